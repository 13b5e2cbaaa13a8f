"""Integration-test fixtures for deterministic provider and credential behavior."""

from __future__ import annotations

import json
import re
from typing import Any

import pytest

from epubforge.llm.openai_client import OpenAIChatClient

_RUNTIME_ENV_KEYS = (
    "OPENAI_API_KEY",
    "EPUBFORGE_PROVIDER",
    "EPUBFORGE_MODEL",
    "EPUBFORGE_SESSION_DIR",
)
_PLACEHOLDER_PATTERN = re.compile(r"\[IMAGE_\d+\]")


class ScriptedChatService:
    """Stand-in for the chat-completions endpoint with per-call failure injection."""

    def __init__(self) -> None:
        """Initialize call log and scripted failures keyed by 1-based call number."""

        self.calls: list[dict[str, Any]] = []
        self.failures: dict[int, Exception] = {}

    def reply(
        self,
        *,
        model: str,
        messages: list[dict[str, Any]],
        response_format: dict[str, Any] | None,
    ) -> str:
        """Acknowledge chunk turns and assemble markup for the final request."""

        self.calls.append(
            {"model": model, "messages": messages, "response_format": response_format}
        )
        failure = self.failures.get(len(self.calls))
        if failure is not None:
            raise failure
        if response_format is None:
            return ""
        return json.dumps({"htmlContent": self._final_markup(messages)})

    @staticmethod
    def _final_markup(messages: list[dict[str, Any]]) -> str:
        """Build a small book that places every image placeholder seen in the conversation."""

        placeholders: list[str] = []
        for message in messages:
            content = message.get("content")
            if not isinstance(content, list):
                continue
            for part in content:
                if part.get("type") != "text":
                    continue
                for token in _PLACEHOLDER_PATTERN.findall(part["text"]):
                    if token not in placeholders:
                        placeholders.append(token)

        figures = "".join(f"<p>{token}</p>" for token in placeholders)
        return (
            '<html lang="en"><head><title>Synthetic Book</title></head><body>'
            '<nav><ol><li><a href="#chapter-1">Chapter 1</a></li>'
            '<li><a href="#chapter-2">Chapter 2</a></li></ol></nav>'
            '<h1 id="chapter-1">Chapter 1</h1><p>Opening text.</p>'
            f"{figures}"
            '<h1 id="chapter-2">Chapter 2</h1><p>Closing text.</p>'
            "</body></html>"
        )


class InMemoryCredentialStore:
    """Simple in-memory credential store used for CLI tests."""

    def __init__(self, initial_api_key: str | None = None, available: bool = True) -> None:
        """Initialize the store with an optional pre-seeded API key."""

        self._api_key = initial_api_key
        self._available = available

    def is_available(self) -> bool:
        """Return availability flag expected by the CLI credentials command."""

        return self._available

    def get_api_key(self) -> str | None:
        """Return currently stored API key value."""

        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        """Persist a normalized API key value."""

        self._api_key = api_key.strip()

    def clear_api_key(self) -> bool:
        """Clear API key and return whether one existed."""

        existed = self._api_key is not None
        self._api_key = None
        return existed


@pytest.fixture(autouse=True)
def _isolate_runtime_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove provider environment variables that would leak into CLI resolution."""

    for key in _RUNTIME_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def chat_service(monkeypatch: pytest.MonkeyPatch) -> ScriptedChatService:
    """Route OpenAI chat completions to a scripted in-process service."""

    service = ScriptedChatService()

    def _mock_chat_completion(
        self: OpenAIChatClient,
        *,
        model: str,
        messages: list[dict[str, Any]],
        response_format: dict[str, Any] | None = None,
        temperature: float = 0.0,
        allow_empty: bool = False,
    ) -> str:
        """Delegate to the scripted service without network or key requirements."""

        del self, temperature, allow_empty
        return service.reply(model=model, messages=messages, response_format=response_format)

    monkeypatch.setattr(OpenAIChatClient, "chat_completion", _mock_chat_completion)
    return service


@pytest.fixture(autouse=True)
def credential_store(monkeypatch: pytest.MonkeyPatch) -> InMemoryCredentialStore:
    """Replace OS keyring access with one in-memory store per test."""

    store = InMemoryCredentialStore()
    monkeypatch.setattr("epubforge.cli.create_credential_store", lambda: store)
    return store
