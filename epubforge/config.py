"""Configuration model and loaders for epubforge.

Responsibilities:
- Define conversion configuration as a typed dataclass.
- Provide deterministic precedence resolution for runtime provider/model settings.
- Provide the YAML file loader entry point.

Key types:
- `ConverterConfig`: normalized settings for one conversion.
- `ProviderRuntimeConfig`: resolved provider/model runtime values.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `ConverterConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import (
    normalize_optional_string,
    parse_non_negative_float,
    parse_positive_int,
)


_DEFAULT_MODEL = "gpt-4.1-mini"
_DEFAULT_OUTPUT_DIR = Path("out")
_DEFAULT_SESSION_DIR = Path(".epubforge") / "sessions"
_DEFAULT_THROTTLE_SECONDS = 1.5
_DEFAULT_MAX_ATTEMPTS = 7
_DEFAULT_INITIAL_RETRY_DELAY_SECONDS = 3.0
_DEFAULT_REQUEST_TIMEOUT_SECONDS = 120.0
_SUPPORTED_PROVIDER_IDS = frozenset({"openai"})


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderRuntimeConfig:
    """Resolved runtime provider and model identifiers for one conversion.

    Attributes:
        provider: Chat provider identifier.
        model: Chat model identifier.
        api_key: Optional provider API key (resolved but never logged or persisted).
    """

    provider: str
    model: str
    api_key: str | None = None

    def as_log_context(self) -> dict[str, str]:
        """Return non-secret runtime values safe to include in log lines."""

        return {
            "provider": self.provider,
            "model": self.model,
            "api_key": "present" if self.api_key else "missing",
        }


@dataclass(slots=True)
class ConverterConfig:
    """Runtime configuration for one conversion.

    Attributes:
        input_pdf: Path to the source PDF.
        output_dir: Directory receiving the `<stem>.epub` file.
        session_dir: Directory holding persisted conversion sessions.
        provider: Chat provider identifier.
        model: Chat model identifier.
        api_key: Optional API key for provider calls.
        throttle_seconds: Pause between chunk submissions.
        max_attempts: Attempt budget per chat request, including the first call.
        initial_retry_delay_seconds: Delay before the first retry.
        request_timeout_seconds: HTTP timeout for one chat request.
        title: Optional fallback title when the markup carries no `<title>`.
        runtime_sources: Optional runtime source overrides injected by CLI.
        extra: Additional metadata for future extensions.
    """

    input_pdf: Path
    output_dir: Path = _DEFAULT_OUTPUT_DIR
    session_dir: Path = _DEFAULT_SESSION_DIR
    provider: str = "openai"
    model: str = _DEFAULT_MODEL
    api_key: str | None = None
    throttle_seconds: float = _DEFAULT_THROTTLE_SECONDS
    max_attempts: int = _DEFAULT_MAX_ATTEMPTS
    initial_retry_delay_seconds: float = _DEFAULT_INITIAL_RETRY_DELAY_SECONDS
    request_timeout_seconds: float = _DEFAULT_REQUEST_TIMEOUT_SECONDS
    title: str | None = None
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)
    extra: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate configuration values before a conversion starts."""

        self._validate_provider_id(self.provider, "provider")
        self._require_non_empty(self.model, "model")
        parse_non_negative_float(self.throttle_seconds, "throttle_seconds")
        parse_positive_int(self.max_attempts, "max_attempts")
        parse_non_negative_float(
            self.initial_retry_delay_seconds, "initial_retry_delay_seconds"
        )
        if parse_non_negative_float(
            self.request_timeout_seconds, "request_timeout_seconds"
        ) == 0.0:
            raise ValueError("`request_timeout_seconds` must be greater than zero.")

    def resolved_provider_runtime(
        self, sources: RuntimeConfigSources | None = None
    ) -> ProviderRuntimeConfig:
        """Resolve provider and model settings with deterministic source precedence.

        Precedence for each key is:
        `cli` > `secure` > `env` > config field default.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources

        provider = self._resolve_runtime_value(
            key="provider",
            env_key="EPUBFORGE_PROVIDER",
            default_value=self.provider,
            sources=resolved_sources,
        )
        model = self._resolve_runtime_value(
            key="model",
            env_key="EPUBFORGE_MODEL",
            default_value=self.model,
            sources=resolved_sources,
        )
        api_key = self._resolve_optional_runtime_value(
            key="api_key",
            env_key="OPENAI_API_KEY",
            default_value=self.api_key,
            sources=resolved_sources,
        )

        resolved = ProviderRuntimeConfig(provider=provider, model=model, api_key=api_key)
        self._validate_provider_id(resolved.provider, "provider")
        self._require_non_empty(resolved.model, "model")
        return resolved

    def _resolve_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str:
        """Resolve a runtime value from sources in deterministic precedence order."""

        resolved = self._resolve_optional_runtime_value(key, env_key, default_value, sources)
        if resolved is None:
            raise ValueError(
                f"`{key}` could not be resolved from CLI, secure storage, env, or defaults."
            )
        return resolved

    def _resolve_optional_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str | None:
        """Resolve an optional runtime value from sources in deterministic order."""

        cli_value = self._normalized_lookup(sources.cli, key)
        if cli_value is not None:
            return cli_value

        secure_value = self._normalized_lookup(sources.secure, key)
        if secure_value is not None:
            return secure_value

        env_value = self._normalized_lookup(sources.env, env_key)
        if env_value is not None:
            return env_value

        return normalize_optional_string(default_value)

    @staticmethod
    def _normalized_lookup(mapping: Mapping[str, str], key: str) -> str | None:
        """Return a stripped mapping value for a key or `None` when missing/blank."""

        if key not in mapping:
            return None
        return normalize_optional_string(mapping.get(key))

    @staticmethod
    def _validate_provider_id(provider_id: str, field_name: str) -> None:
        """Validate provider identifiers against currently supported providers."""

        if provider_id not in _SUPPORTED_PROVIDER_IDS:
            supported = ", ".join(sorted(_SUPPORTED_PROVIDER_IDS))
            raise ValueError(
                f"Unsupported `{field_name}` value `{provider_id}`; supported: {supported}."
            )

    @staticmethod
    def _require_non_empty(value: str, field_name: str) -> None:
        """Validate that runtime string fields are not empty."""

        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"`{field_name}` must be a non-empty string.")


class ConfigLoader:
    """Factory methods for creating `ConverterConfig` from external sources."""

    _REQUIRED_YAML_KEYS = frozenset({"input_pdf"})
    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "input_pdf",
            "output_dir",
            "session_dir",
            "provider",
            "model",
            "api_key",
            "throttle_seconds",
            "max_attempts",
            "initial_retry_delay_seconds",
            "request_timeout_seconds",
            "title",
            "extra",
        }
    )

    @staticmethod
    def from_yaml(path: Path) -> ConverterConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, path)

        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` is not valid YAML: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _build_config_from_mapping(
        payload: Mapping[str, Any], source_label: str
    ) -> ConverterConfig:
        """Build a validated config from a normalized mapping payload."""

        ConfigLoader._validate_yaml_keys(payload, source_label)

        input_pdf = ConfigLoader._required_path(payload, "input_pdf", source_label)
        output_dir = ConfigLoader._optional_path(payload, "output_dir") or _DEFAULT_OUTPUT_DIR
        session_dir = ConfigLoader._optional_path(payload, "session_dir") or _DEFAULT_SESSION_DIR
        provider = ConfigLoader._optional_non_empty_string(payload, "provider") or "openai"
        model = ConfigLoader._optional_non_empty_string(payload, "model") or _DEFAULT_MODEL
        api_key = ConfigLoader._optional_non_empty_string(payload, "api_key")
        title = ConfigLoader._optional_non_empty_string(payload, "title")
        throttle_seconds = ConfigLoader._optional_float(
            payload, "throttle_seconds", source_label, default=_DEFAULT_THROTTLE_SECONDS
        )
        max_attempts = ConfigLoader._optional_positive_int(
            payload, "max_attempts", source_label, default=_DEFAULT_MAX_ATTEMPTS
        )
        initial_retry_delay_seconds = ConfigLoader._optional_float(
            payload,
            "initial_retry_delay_seconds",
            source_label,
            default=_DEFAULT_INITIAL_RETRY_DELAY_SECONDS,
        )
        request_timeout_seconds = ConfigLoader._optional_float(
            payload,
            "request_timeout_seconds",
            source_label,
            default=_DEFAULT_REQUEST_TIMEOUT_SECONDS,
        )
        extra = ConfigLoader._optional_string_map(payload, "extra", source_label)

        config = ConverterConfig(
            input_pdf=input_pdf,
            output_dir=output_dir,
            session_dir=session_dir,
            provider=provider,
            model=model,
            api_key=api_key,
            throttle_seconds=throttle_seconds,
            max_attempts=max_attempts,
            initial_retry_delay_seconds=initial_retry_delay_seconds,
            request_timeout_seconds=request_timeout_seconds,
            title=title,
            extra=extra,
        )
        config.validate()
        return config

    @staticmethod
    def _validate_yaml_keys(payload: Mapping[str, Any], source_label: str) -> None:
        """Validate supported and required YAML keys."""

        unknown = sorted(
            str(key) for key in set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS)
        )
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        missing = sorted(
            key for key in ConfigLoader._REQUIRED_YAML_KEYS if key not in payload
        )
        if missing:
            key_list = ", ".join(missing)
            raise ValueError(f"{source_label} is missing required key(s): {key_list}.")

    @staticmethod
    def _required_path(payload: Mapping[str, Any], key: str, source_label: str) -> Path:
        """Read a required non-empty path-like field from a payload."""

        value = ConfigLoader._optional_non_empty_string(payload, key)
        if value is None:
            raise ValueError(f"{source_label} requires non-empty `{key}`.")
        return Path(value)

    @staticmethod
    def _optional_path(payload: Mapping[str, Any], key: str) -> Path | None:
        value = ConfigLoader._optional_non_empty_string(payload, key)
        return Path(value) if value is not None else None

    @staticmethod
    def _optional_non_empty_string(payload: Mapping[str, Any], key: str) -> str | None:
        """Read an optional string field and normalize blank values to `None`."""

        if key not in payload:
            return None
        return normalize_optional_string(payload[key])

    @staticmethod
    def _optional_positive_int(
        payload: Mapping[str, Any], key: str, source_label: str, default: int
    ) -> int:
        """Read and validate a positive integer payload field."""

        if key not in payload or payload[key] is None:
            return default
        try:
            return parse_positive_int(payload[key], key)
        except ValueError as exc:
            raise ValueError(f"{source_label} field {exc}") from exc

    @staticmethod
    def _optional_float(
        payload: Mapping[str, Any], key: str, source_label: str, default: float
    ) -> float:
        """Read and validate a non-negative number payload field."""

        if key not in payload or payload[key] is None:
            return default
        try:
            return parse_non_negative_float(payload[key], key)
        except ValueError as exc:
            raise ValueError(f"{source_label} field {exc}") from exc

    @staticmethod
    def _optional_string_map(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> dict[str, str]:
        """Read an optional mapping with non-empty string keys and values."""

        if key not in payload:
            return {}

        raw = payload[key]
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{source_label} field `{key}` must be a mapping/object.")

        normalized: dict[str, str] = {}
        for raw_key, raw_value in raw.items():
            key_value = normalize_optional_string(raw_key)
            value_value = normalize_optional_string(raw_value)
            if key_value is None:
                raise ValueError(f"{source_label} field `{key}` contains a blank key.")
            if value_value is None:
                raise ValueError(
                    f"{source_label} field `{key}` contains blank value for `{key_value}`."
                )
            normalized[key_value] = value_value
        return normalized
