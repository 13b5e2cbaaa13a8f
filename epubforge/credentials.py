"""Secure credential storage helpers for the epubforge CLI.

Responsibilities:
- Persist provider API keys in an OS-backed secure credential store.
- Provide deterministic read/write/delete operations for provider credentials.
- Avoid logging or exposing secret values in diagnostics.

Key types:
- `CredentialStore`: interface for provider credential persistence.
- `KeyringCredentialStore`: keyring-backed secure credential storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import keyring
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError, PasswordDeleteError


_DEFAULT_SERVICE_NAME = "epubforge"
_DEFAULT_ACCOUNT_NAME = "openai_api_key"


class CredentialStore:
    """Interface for secure provider credential operations."""

    def is_available(self) -> bool:
        """Return whether secure credential operations are available."""

        raise NotImplementedError

    def get_api_key(self) -> str | None:
        """Load the stored API key from secure storage, when available."""

        raise NotImplementedError

    def set_api_key(self, api_key: str) -> None:
        """Persist an API key in secure storage."""

        raise NotImplementedError

    def clear_api_key(self) -> bool:
        """Delete a stored API key and return whether one existed."""

        raise NotImplementedError


@dataclass(slots=True)
class KeyringCredentialStore(CredentialStore):
    """Secure credential store backed by the `keyring` package.

    `keyring_module` defaults to the real `keyring` module and can be replaced
    with any object exposing `get_keyring`, `get_password`, `set_password`, and
    `delete_password`.
    """

    service_name: str = _DEFAULT_SERVICE_NAME
    account_name: str = _DEFAULT_ACCOUNT_NAME
    keyring_module: Any = field(default=keyring, repr=False)

    def is_available(self) -> bool:
        """Return `True` when a usable keyring backend is configured."""

        try:
            backend = self.keyring_module.get_keyring()
        except KeyringError:
            return False
        return not isinstance(backend, FailKeyring)

    def get_api_key(self) -> str | None:
        """Get a normalized API key from keyring, returning `None` when missing."""

        try:
            value = self.keyring_module.get_password(self.service_name, self.account_name)
        except KeyringError:
            return None
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        return normalized

    def set_api_key(self, api_key: str) -> None:
        """Persist a normalized API key in keyring or raise when unavailable."""

        normalized = api_key.strip()
        if not normalized:
            raise ValueError("API key must be a non-empty string.")
        try:
            self.keyring_module.set_password(self.service_name, self.account_name, normalized)
        except KeyringError as exc:
            raise RuntimeError(
                "Secure credential storage is unavailable: no usable keyring backend "
                f"is configured ({type(exc).__name__})."
            ) from exc

    def clear_api_key(self) -> bool:
        """Remove the stored API key from keyring and report if one was present."""

        existing = self.get_api_key()
        if existing is None:
            return False

        try:
            self.keyring_module.delete_password(self.service_name, self.account_name)
        except PasswordDeleteError:
            return False
        return True


def create_credential_store() -> CredentialStore:
    """Create the default secure credential store implementation."""

    return KeyringCredentialStore()
