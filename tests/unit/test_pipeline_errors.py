"""Unit tests for mapping stage failures to user-facing errors."""

from __future__ import annotations

from epubforge.errors import PipelineStageError
from epubforge.llm.openai_client import MalformedResponseError, OpenAIProviderError
from epubforge.pipeline.errors import stage_error_from_exception


def test_quota_failures_report_saved_progress_and_resume_hint() -> None:
    """Quota exhaustion should tell the user to resume later."""

    error = stage_error_from_exception(
        "submit",
        OpenAIProviderError(
            "OpenAI quota exceeded for this request (HTTP 429).",
            failure_kind="insufficient_quota",
        ),
    )

    assert error.stage == "submit"
    assert error.category == "quota_exceeded"
    assert error.detail == "Daily API quota exceeded. Your progress has been saved."
    assert error.hint is not None and "--resume" in error.hint
    assert error.retriable is False


def test_rate_limit_failures_suggest_waiting() -> None:
    """Rate-limit failures should carry a wait-and-resume hint."""

    error = stage_error_from_exception("finalize", RuntimeError("429 Too Many Requests"))

    assert error.category == "rate_limited"
    assert error.detail == "API rate limit exceeded. Your progress has been saved."
    assert error.hint is not None and error.hint.startswith("Wait a few minutes")


def test_transient_failures_are_marked_retriable() -> None:
    """Server hiccups should be reported as retriable."""

    error = stage_error_from_exception(
        "submit",
        OpenAIProviderError("OpenAI server error (HTTP 500).", failure_kind="server_error"),
    )

    assert error.category == "transient_server"
    assert error.retriable is True
    assert "Your progress has been saved." in error.detail


def test_other_provider_failures_keep_their_message() -> None:
    """Unclassified failures should surface the original message verbatim."""

    error = stage_error_from_exception(
        "finalize", MalformedResponseError("API response did not contain 'htmlContent'.")
    )

    assert error.category == "malformed_response"
    assert error.detail == "API response did not contain 'htmlContent'."
    assert error.retriable is False


def test_invalid_api_key_gets_credentials_hint() -> None:
    """Authentication failures should point at credential configuration."""

    error = stage_error_from_exception(
        "submit",
        OpenAIProviderError(
            "OpenAI authentication failed (HTTP 401).",
            failure_kind="invalid_api_key",
        ),
    )

    assert error.category == "unclassified"
    assert error.hint is not None and "OPENAI_API_KEY" in error.hint


def test_non_provider_stages_are_not_classified() -> None:
    """Failures outside submit/finalize should not be mistaken for provider errors."""

    error = stage_error_from_exception("extract", ValueError("page 503 is unreadable"))

    assert error.stage == "extract"
    assert error.category == "unclassified"
    assert error.detail == "page 503 is unreadable"


def test_existing_stage_errors_pass_through() -> None:
    """Already-mapped errors should be returned unchanged."""

    original = PipelineStageError(stage="package", detail="Could not create `OEBPS` folder.")

    assert stage_error_from_exception("finalize", original) is original
