"""Map failures escaping a conversion stage to user-facing stage errors."""

from __future__ import annotations

from ..errors import PipelineStageError
from ..llm.openai_client import OpenAIProviderError
from ..llm.retry import ErrorCategory, classify_error

_PROVIDER_STAGES = frozenset({"submit", "finalize"})
_RESUME_COMMAND = "epubforge convert <input.pdf> --resume"


def stage_error_from_exception(stage: str, exc: Exception) -> PipelineStageError:
    """Convert an exception raised inside `stage` into a `PipelineStageError`.

    Provider stages are classified so quota, rate-limit, and transient failures
    carry resume guidance. The session is left at its last persisted boundary in
    every case, so the messages state that progress has been saved.
    """

    if isinstance(exc, PipelineStageError):
        return exc

    category = classify_error(exc) if stage in _PROVIDER_STAGES else ErrorCategory.UNCLASSIFIED

    if category == ErrorCategory.QUOTA_EXCEEDED:
        return PipelineStageError(
            stage=stage,
            detail="Daily API quota exceeded. Your progress has been saved.",
            hint=f"Resume after the quota resets (usually the next day) with `{_RESUME_COMMAND}`.",
            category=category,
        )
    if category == ErrorCategory.RATE_LIMITED:
        return PipelineStageError(
            stage=stage,
            detail="API rate limit exceeded. Your progress has been saved.",
            hint=f"Wait a few minutes, then resume with `{_RESUME_COMMAND}`.",
            category=category,
        )
    if category == ErrorCategory.TRANSIENT_SERVER:
        return PipelineStageError(
            stage=stage,
            detail=(
                "A temporary network or server error occurred. "
                "Your progress has been saved."
            ),
            hint=f"Retry in a moment with `{_RESUME_COMMAND}`.",
            category=category,
            retriable=True,
        )

    hint: str | None = None
    if isinstance(exc, OpenAIProviderError) and exc.failure_kind == "invalid_api_key":
        hint = "Verify `OPENAI_API_KEY` or `epubforge credentials`, then resume."
    elif isinstance(exc, OpenAIProviderError) and exc.failure_kind == "invalid_model":
        hint = "Check the configured model name with `--model` or `EPUBFORGE_MODEL`."
    return PipelineStageError(
        stage=stage,
        detail=str(exc) or type(exc).__name__,
        hint=hint,
        category=category,
    )
