"""Multi-turn conversation client for chunked document submission.

Responsibilities:
- Hold the chat history for one conversion and replay persisted history on resume.
- Submit page chunks (text plus inline images) as individual conversation turns.
- Request the final structured markup and validate its shape.

The conversation history is an opaque list of chat message records. Callers
persist it through `Conversation.export_state()` and hand it back verbatim to
`start()`; nothing outside this module interprets its contents.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
import json
import re
from typing import Any, Protocol, Sequence

from ..models.datatypes import ExtractedImage, PageRange
from ..telemetry.logger import RunLogger
from .openai_client import MalformedResponseError, OpenAIChatClient
from .prompts import MARKUP_FIELD, PromptLibrary
from .retry import RetryPolicy

_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_END = re.compile(r"\s*```$")


@dataclass(slots=True)
class Conversation:
    """Session-scoped conversation handle."""

    history: list[dict[str, Any]] = field(default_factory=list)

    def export_state(self) -> list[dict[str, Any]]:
        """Return a detached copy of the history suitable for persistence."""

        return copy.deepcopy(self.history)


class ConversationClient(Protocol):
    """Protocol for chunked conversation providers."""

    def start(self, prior_history: list[dict[str, Any]] | None = None) -> Conversation:
        """Create a conversation, optionally replaying persisted history."""

    def submit_chunk(
        self,
        conversation: Conversation,
        text: str,
        images: Sequence[ExtractedImage],
        page_range: PageRange,
    ) -> None:
        """Send one chunk turn; success is the absence of an error."""

    def finalize(self, conversation: Conversation) -> str:
        """Request and return the final generated markup."""


def parse_markup_response(raw_text: str) -> str:
    """Extract the markup string from a structured final response.

    Raises:
        MalformedResponseError: If the response is not JSON or lacks the markup field.
    """

    cleaned = _CODE_FENCE_END.sub("", _CODE_FENCE_START.sub("", raw_text.strip()))
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            f"Final response is not valid JSON: {exc.msg}."
        ) from exc
    if not isinstance(payload, dict):
        raise MalformedResponseError("Final response must be a JSON object.")
    markup = payload.get(MARKUP_FIELD)
    if not isinstance(markup, str) or not markup.strip():
        raise MalformedResponseError(f"API response did not contain '{MARKUP_FIELD}'.")
    return markup


class OpenAIConversationClient:
    """OpenAI-backed conversation client with client-side history replay."""

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = 120.0,
        run_logger: RunLogger | None = None,
    ) -> None:
        """Initialize conversation settings and OpenAI client dependencies."""

        self.model = model
        self.client = OpenAIChatClient(api_key=api_key, timeout_seconds=timeout_seconds)
        self.retry_policy = (
            retry_policy if retry_policy is not None else RetryPolicy(run_logger=run_logger)
        )
        self.prompts = PromptLibrary()

    def start(self, prior_history: list[dict[str, Any]] | None = None) -> Conversation:
        """Create a conversation handle seeded with a copy of `prior_history`."""

        return Conversation(history=copy.deepcopy(prior_history or []))

    def submit_chunk(
        self,
        conversation: Conversation,
        text: str,
        images: Sequence[ExtractedImage],
        page_range: PageRange,
    ) -> None:
        """Send one chunk turn and append it plus the acknowledgement to history."""

        content: list[dict[str, Any]] = [
            {"type": "text", "text": self.prompts.chunk_prompt(page_range, text)}
        ]
        content.extend(
            {"type": "image_url", "image_url": {"url": image.data_uri}} for image in images
        )
        user_turn = {"role": "user", "content": content}
        messages = [self._system_message(), *conversation.history, user_turn]

        reply = self.retry_policy.call(
            lambda: self.client.chat_completion(
                model=self.model, messages=messages, allow_empty=True
            ),
            description=f"submit_chunk:{page_range.index}",
        )
        conversation.history.append(user_turn)
        conversation.history.append({"role": "assistant", "content": reply})

    def finalize(self, conversation: Conversation) -> str:
        """Request the final markup without mutating the conversation history."""

        messages = [
            self._system_message(),
            *conversation.history,
            {"role": "user", "content": self.prompts.final_prompt()},
        ]
        raw_response = self.retry_policy.call(
            lambda: self.client.chat_completion(
                model=self.model,
                messages=messages,
                response_format=self.prompts.response_format(),
            ),
            description="finalize",
        )
        return parse_markup_response(raw_response)

    @property
    def retry_attempt_count(self) -> int:
        """Return retry attempt count performed by the retry policy."""

        return self.retry_policy.retry_attempt_count

    def _system_message(self) -> dict[str, Any]:
        """Return the fixed system instruction message."""

        return {"role": "system", "content": self.prompts.system_instruction()}
