"""Provider factory helpers for conversation clients.

Responsibilities:
- Resolve provider identifiers to concrete conversation client implementations.
- Keep orchestration independent from concrete provider class construction.

Notes:
- Only `openai` is implemented at the moment.
"""

from __future__ import annotations

from .llm.conversation import ConversationClient, OpenAIConversationClient
from .llm.retry import RetryPolicy
from .telemetry.logger import RunLogger


class ProviderFactory:
    """Factory for provider-backed conversation clients used by the pipeline."""

    @staticmethod
    def create_conversation_client(
        provider_id: str,
        model: str,
        api_key: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = 120.0,
        run_logger: RunLogger | None = None,
    ) -> ConversationClient:
        """Create a conversation client for a configured provider identifier."""

        if provider_id == "openai":
            return OpenAIConversationClient(
                model=model,
                api_key=api_key,
                retry_policy=retry_policy,
                timeout_seconds=timeout_seconds,
                run_logger=run_logger,
            )
        raise ValueError(f"Unsupported conversation provider `{provider_id}`.")
