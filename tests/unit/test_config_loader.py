"""Unit tests for YAML/environment configuration loader behavior."""

from __future__ import annotations

from pathlib import Path

import pytest

from epubforge.config import ConfigLoader, ConverterConfig, RuntimeConfigSources


def test_config_loader_from_yaml_loads_valid_config_and_normalizes_values(
    tmp_path: Path,
) -> None:
    """YAML loader should parse valid payloads and normalize typed/blank values."""

    config_path = tmp_path / "epubforge.yml"
    config_path.write_text(
        """
input_pdf: " scans/report.pdf "
output_dir: " books "
session_dir: " .cache/sessions "
provider: " openai "
model: " gpt-4.1 "
api_key: " test-key "
throttle_seconds: "0.25"
max_attempts: " 3 "
initial_retry_delay_seconds: 1
request_timeout_seconds: 30
title: "  Field Report  "
extra:
  profile: " nightly "
""".strip(),
        encoding="utf-8",
    )

    config = ConfigLoader.from_yaml(config_path)

    assert config.input_pdf == Path("scans/report.pdf")
    assert config.output_dir == Path("books")
    assert config.session_dir == Path(".cache/sessions")
    assert config.provider == "openai"
    assert config.model == "gpt-4.1"
    assert config.api_key == "test-key"
    assert config.throttle_seconds == 0.25
    assert config.max_attempts == 3
    assert config.initial_retry_delay_seconds == 1.0
    assert config.request_timeout_seconds == 30.0
    assert config.title == "Field Report"
    assert config.extra == {"profile": "nightly"}


def test_config_loader_from_yaml_applies_defaults(tmp_path: Path) -> None:
    """Omitted optional keys should fall back to documented defaults."""

    config_path = tmp_path / "minimal.yaml"
    config_path.write_text("input_pdf: book.pdf\n", encoding="utf-8")

    config = ConfigLoader.from_yaml(config_path)

    assert config.output_dir == Path("out")
    assert config.session_dir == Path(".epubforge") / "sessions"
    assert config.model == "gpt-4.1-mini"
    assert config.throttle_seconds == 1.5
    assert config.max_attempts == 7
    assert config.initial_retry_delay_seconds == 3.0
    assert config.title is None


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ("output_dir: out\n", "is missing required key(s): input_pdf"),
        ("input_pdf: a.pdf\nchunk_size: 10\n", "includes unsupported key(s): chunk_size"),
        ("input_pdf: a.pdf\nmax_attempts: zero\n", "`max_attempts` must be a positive integer."),
        (
            "input_pdf: a.pdf\nthrottle_seconds: -1\n",
            "`throttle_seconds` must be a non-negative number.",
        ),
        ("input_pdf: a.pdf\nprovider: gemini\n", "Unsupported `provider` value `gemini`"),
        ("- just\n- a list\n", "must contain a top-level mapping/object"),
        ("input_pdf: [unclosed\n", "is not valid YAML"),
    ],
)
def test_config_loader_from_yaml_rejects_invalid_payloads(
    tmp_path: Path, payload: str, message: str
) -> None:
    """Invalid schemas and values should raise `ValueError` with a precise message."""

    config_path = tmp_path / "invalid.yaml"
    config_path.write_text(payload, encoding="utf-8")

    with pytest.raises(ValueError) as exc_info:
        ConfigLoader.from_yaml(config_path)

    assert message in str(exc_info.value)


def test_config_loader_from_yaml_missing_file_raises() -> None:
    """A missing config path should surface as `FileNotFoundError`."""

    with pytest.raises(FileNotFoundError):
        ConfigLoader.from_yaml(Path("does-not-exist.yaml"))


def test_runtime_resolution_precedence_cli_over_secure_over_env_over_config() -> None:
    """Each runtime key should resolve from the highest-priority non-blank source."""

    config = ConverterConfig(input_pdf=Path("in.pdf"), model="config-model", api_key="config-key")

    resolved = config.resolved_provider_runtime(
        RuntimeConfigSources(
            cli={"model": "cli-model", "api_key": "  "},
            secure={"api_key": "secure-key"},
            env={"EPUBFORGE_MODEL": "env-model", "OPENAI_API_KEY": "env-key"},
        )
    )

    assert resolved.provider == "openai"
    assert resolved.model == "cli-model"
    assert resolved.api_key == "secure-key"


def test_runtime_resolution_falls_back_to_env_then_config() -> None:
    """Without CLI or secure values, env and then config defaults should apply."""

    config = ConverterConfig(input_pdf=Path("in.pdf"), model="config-model")

    resolved = config.resolved_provider_runtime(
        RuntimeConfigSources(env={"OPENAI_API_KEY": "env-key"})
    )

    assert resolved.model == "config-model"
    assert resolved.api_key == "env-key"
    assert resolved.as_log_context() == {
        "provider": "openai",
        "model": "config-model",
        "api_key": "present",
    }


def test_runtime_resolution_rejects_unsupported_provider() -> None:
    """Unsupported provider ids from any source should be rejected."""

    config = ConverterConfig(input_pdf=Path("in.pdf"))

    with pytest.raises(ValueError, match="Unsupported `provider`"):
        config.resolved_provider_runtime(RuntimeConfigSources(cli={"provider": "other"}))


def test_validate_rejects_zero_request_timeout() -> None:
    """A zero HTTP timeout should be rejected."""

    config = ConverterConfig(input_pdf=Path("in.pdf"), request_timeout_seconds=0)

    with pytest.raises(ValueError, match="request_timeout_seconds"):
        config.validate()
