"""Unit tests for the requests-based OpenAI chat client."""

from __future__ import annotations

import json

import pytest

from epubforge.llm import openai_client as openai_http
from epubforge.llm.openai_client import OpenAIChatClient, OpenAIProviderError


class _MockRequestsResponse:
    """Minimal requests response mock for HTTP transport patching."""

    def __init__(self, *, payload: bytes, status_code: int = 200) -> None:
        """Initialize response with raw payload bytes and HTTP status."""

        self.content = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        """Raise HTTPError when the response status represents a failure."""

        if self.status_code >= 400:
            raise openai_http.requests.HTTPError(
                f"HTTP {self.status_code} error",
                response=self,
            )


def _chat_payload(content: object) -> bytes:
    """Return an encoded chat-completions body with one choice."""

    body = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    return json.dumps(body).encode("utf-8")


def _error_payload(message: str, code: str | None = None) -> bytes:
    """Return an encoded OpenAI error body."""

    return json.dumps({"error": {"message": message, "code": code}}).encode("utf-8")


def test_chat_completion_posts_messages_and_returns_text(monkeypatch: pytest.MonkeyPatch) -> None:
    """The client should send the full message list and return stripped assistant text."""

    captured: dict[str, object] = {}

    def _fake_post(url: str, **kwargs: object) -> _MockRequestsResponse:
        """Capture request arguments and return a successful response."""

        captured["url"] = url
        captured.update(kwargs)
        return _MockRequestsResponse(payload=_chat_payload("  ready  "))

    monkeypatch.setattr(openai_http.requests, "post", _fake_post)
    client = OpenAIChatClient(api_key=" sk-test ", timeout_seconds=12.0)
    messages = [{"role": "user", "content": "hello"}]

    reply = client.chat_completion(
        model="gpt-4.1-mini",
        messages=messages,
        response_format={"type": "json_object"},
    )

    assert reply == "ready"
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["timeout"] == 12.0
    assert captured["headers"] == {
        "Authorization": "Bearer sk-test",
        "Content-Type": "application/json",
    }
    assert captured["json"] == {
        "model": "gpt-4.1-mini",
        "messages": messages,
        "temperature": 0.0,
        "response_format": {"type": "json_object"},
    }


def test_chat_completion_joins_text_content_parts(monkeypatch: pytest.MonkeyPatch) -> None:
    """List-style message content should be flattened to its text parts."""

    payload = _chat_payload(
        [{"type": "text", "text": "part one "}, {"type": "text", "text": "two"}]
    )
    monkeypatch.setattr(
        openai_http.requests,
        "post",
        lambda *_args, **_kwargs: _MockRequestsResponse(payload=payload),
    )

    client = OpenAIChatClient(api_key="sk-test")

    assert client.chat_completion(model="m", messages=[]) == "part one two"


def test_chat_completion_requires_api_key() -> None:
    """Calls without an API key should fail before any HTTP request."""

    client = OpenAIChatClient(api_key="  ")

    with pytest.raises(OpenAIProviderError) as exc_info:
        client.chat_completion(model="m", messages=[])

    assert exc_info.value.failure_kind == "invalid_api_key"


@pytest.mark.parametrize(
    ("status_code", "body", "expected_kind"),
    [
        (401, _error_payload("Incorrect API key provided: sk-abcdefghijkl"), "invalid_api_key"),
        (
            429,
            _error_payload("You exceeded your current quota.", "insufficient_quota"),
            "insufficient_quota",
        ),
        (
            429,
            _error_payload("Rate limit reached for requests.", "rate_limit_exceeded"),
            "rate_limited",
        ),
        (
            404,
            _error_payload("The model `gpt-x` does not exist.", "model_not_found"),
            "invalid_model",
        ),
        (503, _error_payload("The server is overloaded."), "server_error"),
        (504, b"", "timeout"),
        (400, _error_payload("Bad request."), "http_error"),
    ],
)
def test_http_failures_are_classified(
    monkeypatch: pytest.MonkeyPatch,
    status_code: int,
    body: bytes,
    expected_kind: str,
) -> None:
    """HTTP failures should carry a deterministic failure kind."""

    monkeypatch.setattr(
        openai_http.requests,
        "post",
        lambda *_args, **_kwargs: _MockRequestsResponse(payload=body, status_code=status_code),
    )
    client = OpenAIChatClient(api_key="sk-test")

    with pytest.raises(OpenAIProviderError) as exc_info:
        client.chat_completion(model="m", messages=[])

    assert exc_info.value.failure_kind == expected_kind
    assert exc_info.value.status_code == status_code


def test_http_error_detail_redacts_api_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """Key-like tokens echoed by the provider should not reach error messages."""

    body = _error_payload("Incorrect API key provided: sk-abcdefghijklmnop")
    monkeypatch.setattr(
        openai_http.requests,
        "post",
        lambda *_args, **_kwargs: _MockRequestsResponse(payload=body, status_code=401),
    )
    client = OpenAIChatClient(api_key="sk-test")

    with pytest.raises(OpenAIProviderError) as exc_info:
        client.chat_completion(model="m", messages=[])

    assert "sk-abcdefghijklmnop" not in str(exc_info.value)
    assert "[redacted-key]" in str(exc_info.value)


def test_transport_timeout_is_classified(monkeypatch: pytest.MonkeyPatch) -> None:
    """Requests timeouts should map to the `timeout` failure kind."""

    def _timeout(*_args: object, **_kwargs: object) -> None:
        """Raise a requests timeout."""

        raise openai_http.requests.Timeout("read timed out")

    monkeypatch.setattr(openai_http.requests, "post", _timeout)
    client = OpenAIChatClient(api_key="sk-test")

    with pytest.raises(OpenAIProviderError) as exc_info:
        client.chat_completion(model="m", messages=[])

    assert exc_info.value.failure_kind == "timeout"


@pytest.mark.parametrize(
    "payload",
    [b"not json", b"{}", json.dumps({"choices": [{"message": {"content": "  "}}]}).encode()],
)
def test_malformed_success_payloads_are_rejected(
    monkeypatch: pytest.MonkeyPatch, payload: bytes
) -> None:
    """Unusable success bodies should raise with the `malformed` failure kind."""

    monkeypatch.setattr(
        openai_http.requests,
        "post",
        lambda *_args, **_kwargs: _MockRequestsResponse(payload=payload),
    )
    client = OpenAIChatClient(api_key="sk-test")

    with pytest.raises(OpenAIProviderError) as exc_info:
        client.chat_completion(model="m", messages=[])

    assert exc_info.value.failure_kind == "malformed"


@pytest.mark.parametrize("content", ["", "   ", None])
def test_chat_completion_returns_empty_text_when_allowed(
    monkeypatch: pytest.MonkeyPatch, content: object
) -> None:
    """`allow_empty` should turn a reply without text into an empty string."""

    monkeypatch.setattr(
        openai_http.requests,
        "post",
        lambda *_args, **_kwargs: _MockRequestsResponse(payload=_chat_payload(content)),
    )
    client = OpenAIChatClient(api_key="sk-test")

    assert client.chat_completion(model="m", messages=[], allow_empty=True) == ""
