"""Retry policy and error classification for chat-model calls.

Responsibilities:
- Classify provider failures into quota, rate-limit, transient, malformed, or
  unclassified categories.
- Retry retriable failures with exponential backoff and jitter.
- Surface the last error unchanged once the attempt budget is spent.
"""

from __future__ import annotations

from dataclasses import dataclass
import random
from time import sleep
from typing import Callable, TypeVar

from ..telemetry.logger import RunLogger
from .openai_client import OpenAIProviderError

_Result = TypeVar("_Result")


class ErrorCategory:
    """String constants for conversation failure categories."""

    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_SERVER = "transient_server"
    MALFORMED_RESPONSE = "malformed_response"
    UNCLASSIFIED = "unclassified"

    RETRIABLE = frozenset({RATE_LIMITED, TRANSIENT_SERVER})


_FAILURE_KIND_CATEGORIES = {
    "insufficient_quota": ErrorCategory.QUOTA_EXCEEDED,
    "rate_limited": ErrorCategory.RATE_LIMITED,
    "server_error": ErrorCategory.TRANSIENT_SERVER,
    "timeout": ErrorCategory.TRANSIENT_SERVER,
    "transport": ErrorCategory.TRANSIENT_SERVER,
    "unknown": ErrorCategory.TRANSIENT_SERVER,
    "malformed": ErrorCategory.MALFORMED_RESPONSE,
}
_QUOTA_MARKERS = ("daily limit", "quota exceeded", "exceeded your current quota")
_RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "rate limit")
_TRANSIENT_MARKERS = ("500", "503", "unknown", "rpc failed")


def classify_error(exc: BaseException) -> str:
    """Return the `ErrorCategory` value for a failed chat-model call."""

    text = str(exc).lower()
    if any(marker in text for marker in _QUOTA_MARKERS):
        return ErrorCategory.QUOTA_EXCEEDED
    if isinstance(exc, OpenAIProviderError):
        return _FAILURE_KIND_CATEGORIES.get(exc.failure_kind, ErrorCategory.UNCLASSIFIED)
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorCategory.RATE_LIMITED
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return ErrorCategory.TRANSIENT_SERVER
    return ErrorCategory.UNCLASSIFIED


@dataclass(slots=True)
class RetryPolicy:
    """Bounded exponential-backoff retry loop for chat-model requests.

    The delay before retry `n + 1` is `delay_n * 2 + jitter() * max_jitter_seconds`,
    starting from `initial_delay_seconds`, without an upper cap.
    """

    max_attempts: int = 7
    initial_delay_seconds: float = 3.0
    max_jitter_seconds: float = 1.0
    sleeper: Callable[[float], None] = sleep
    jitter: Callable[[], float] = random.random
    run_logger: RunLogger | None = None
    retry_attempt_count: int = 0

    def call(self, operation: Callable[[], _Result], *, description: str) -> _Result:
        """Run `operation`, retrying retriable failures within the attempt budget."""

        if self.max_attempts <= 0:
            raise ValueError("`max_attempts` must be a positive integer.")

        delay = self.initial_delay_seconds
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except Exception as exc:
                category = classify_error(exc)
                if category not in ErrorCategory.RETRIABLE or attempt >= self.max_attempts:
                    self._log_giving_up(description, attempt, category, exc)
                    raise
                if self.run_logger is not None:
                    self.run_logger.log_warning(
                        "retry",
                        "scheduled",
                        operation=description,
                        attempt=f"{attempt}/{self.max_attempts}",
                        category=category,
                        delay_seconds=f"{delay:.3f}",
                    )
                self.sleeper(delay)
                self.retry_attempt_count += 1
                delay = delay * 2 + self.jitter() * self.max_jitter_seconds
        raise AssertionError("unreachable: retry loop exited without result or error")

    def _log_giving_up(
        self, description: str, attempt: int, category: str, exc: Exception
    ) -> None:
        """Log the final failure of an operation."""

        if self.run_logger is None:
            return
        self.run_logger.log_stage_failure(
            "retry",
            type(exc).__name__,
            operation=description,
            attempt=f"{attempt}/{self.max_attempts}",
            category=category,
        )
