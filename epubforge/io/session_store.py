"""Durable key-value persistence for in-progress conversion sessions.

Responsibilities:
- Serialize `ConversionSession` records into the persisted JSON record shape.
- Store one session per document identity key with atomic overwrites.
- Treat undecodable or malformed entries as absent and remove them.

Persisted record shape::

    {"currentChunk": int, "numPages": int,
     "chatHistory": [...], "allImages": [{"mimeType": str, "data": str}]}
"""

from __future__ import annotations

from hashlib import sha256
import json
import os
from pathlib import Path
import re
import tempfile
from typing import Any, Protocol

from ..models.datatypes import ConversionSession, ExtractedImage
from ..telemetry.logger import RunLogger


class SessionStore(Protocol):
    """Protocol for session persistence keyed by document identity."""

    def save(self, key: str, session: ConversionSession) -> None:
        """Overwrite the session stored under `key`."""

    def load(self, key: str) -> ConversionSession | None:
        """Return the last saved session, or `None` when absent or corrupt."""

    def delete(self, key: str) -> None:
        """Remove the session stored under `key`; no error when absent."""


def session_payload(session: ConversionSession) -> dict[str, Any]:
    """Return the JSON-serializable record for a session."""

    return {
        "currentChunk": session.next_chunk_index,
        "numPages": session.total_pages,
        "chatHistory": session.conversation_state,
        "allImages": [image.as_payload() for image in session.images],
    }


def session_from_payload(payload: object) -> ConversionSession:
    """Validate a decoded record and build a session from it.

    Raises:
        ValueError: If required fields are missing or have the wrong shape.
    """

    if not isinstance(payload, dict):
        raise ValueError("Session record root must be a JSON object.")

    current_chunk = payload.get("currentChunk")
    if isinstance(current_chunk, bool) or not isinstance(current_chunk, int) or current_chunk < 0:
        raise ValueError("Session record requires a non-negative integer `currentChunk`.")

    num_pages = payload.get("numPages")
    if isinstance(num_pages, bool) or not isinstance(num_pages, int) or num_pages <= 0:
        raise ValueError("Session record requires a positive integer `numPages`.")

    chat_history = payload.get("chatHistory")
    if not isinstance(chat_history, list) or not all(
        isinstance(turn, dict) for turn in chat_history
    ):
        raise ValueError("Session record requires a `chatHistory` list of turn objects.")

    raw_images = payload.get("allImages", [])
    if raw_images is None:
        raw_images = []
    if not isinstance(raw_images, list):
        raise ValueError("Session record field `allImages` must be a list.")
    images: list[ExtractedImage] = []
    for index, raw_image in enumerate(raw_images):
        if not isinstance(raw_image, dict):
            raise ValueError(f"Session image #{index} must be an object.")
        mime_type = raw_image.get("mimeType")
        data = raw_image.get("data")
        if not isinstance(mime_type, str) or not mime_type or not isinstance(data, str):
            raise ValueError(f"Session image #{index} requires `mimeType` and `data` strings.")
        images.append(ExtractedImage(mime_type=mime_type, data=data))

    return ConversionSession(
        next_chunk_index=current_chunk,
        total_pages=num_pages,
        conversation_state=chat_history,
        images=tuple(images),
    )


class FileSessionStore:
    """Filesystem-backed session store with one JSON file per key."""

    _UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

    def __init__(self, root: Path, run_logger: RunLogger | None = None) -> None:
        """Initialize the store with a root directory for session files."""

        self.root = root
        self._run_logger = run_logger

    def path_for(self, key: str) -> Path:
        """Return the deterministic file path used for a session key."""

        safe_name = self._UNSAFE_FILENAME_CHARS.sub("_", key).strip("._")[:120] or "session"
        digest = sha256(key.encode("utf-8")).hexdigest()[:12]
        return self.root / f"{safe_name}-{digest}.json"

    def save(self, key: str, session: ConversionSession) -> None:
        """Atomically replace the session file for `key`."""

        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        encoded = json.dumps(session_payload(session), ensure_ascii=False)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.stem}.",
            suffix=".tmp",
            delete=False,
        )
        try:
            with handle:
                handle.write(encoded)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(handle.name, path)
        except BaseException:
            Path(handle.name).unlink(missing_ok=True)
            raise

    def load(self, key: str) -> ConversionSession | None:
        """Load the session for `key`, discarding corrupt entries."""

        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return session_from_payload(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, UnicodeDecodeError) as exc:
            path.unlink(missing_ok=True)
            if self._run_logger is not None:
                self._run_logger.log_warning(
                    "session",
                    "discarded_corrupt",
                    error_type=type(exc).__name__,
                )
            return None

    def delete(self, key: str) -> None:
        """Delete the session file for `key` when present."""

        self.path_for(key).unlink(missing_ok=True)


class InMemorySessionStore:
    """Process-local session store that keeps serialized records in a dict."""

    def __init__(self) -> None:
        """Initialize empty serialized-record storage."""

        self.records: dict[str, str] = {}

    def save(self, key: str, session: ConversionSession) -> None:
        """Serialize and store the session."""

        self.records[key] = json.dumps(session_payload(session), ensure_ascii=False)

    def load(self, key: str) -> ConversionSession | None:
        """Decode the stored session, discarding corrupt entries."""

        raw = self.records.get(key)
        if raw is None:
            return None
        try:
            return session_from_payload(json.loads(raw))
        except ValueError:
            self.records.pop(key, None)
            return None

    def delete(self, key: str) -> None:
        """Remove the stored session when present."""

        self.records.pop(key, None)
