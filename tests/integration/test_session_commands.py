"""Integration tests for the `status` and `reset` session commands."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from pytest import MonkeyPatch
from typer.testing import CliRunner

from epubforge.cli import app
from epubforge.io.session_store import FileSessionStore
from epubforge.models.datatypes import ConversionSession, Document, ExtractedImage

PdfFactory = Callable[..., Path]


def _seed_session(pdf_path: Path, session_dir: Path, next_chunk_index: int = 1) -> None:
    """Persist an unfinished session for `pdf_path` the way `convert` would."""

    document = Document.from_path(pdf_path)
    FileSessionStore(session_dir).save(
        document.identity_key,
        ConversionSession(
            next_chunk_index=next_chunk_index,
            total_pages=12,
            conversation_state=[{"role": "user", "content": "pages 1-5"}],
            images=(ExtractedImage(mime_type="image/png", data="iVBORw0KGgo="),),
        ),
    )


def test_status_reports_missing_session(pdf_factory: PdfFactory, tmp_path: Path) -> None:
    """Status should say so when no session exists for the file."""

    pdf_path = pdf_factory("atlas.pdf")

    result = CliRunner().invoke(
        app, ["status", str(pdf_path), "--session-dir", str(tmp_path / "sessions")]
    )

    assert result.exit_code == 0, result.output
    assert "No resumable session for `atlas.pdf`." in result.output


def test_status_reports_saved_progress(pdf_factory: PdfFactory, tmp_path: Path) -> None:
    """Status should show acknowledged chunks, pages, and collected images."""

    pdf_path = pdf_factory("atlas.pdf")
    _seed_session(pdf_path, tmp_path / "sessions", next_chunk_index=2)

    result = CliRunner().invoke(
        app, ["status", str(pdf_path), "--session-dir", str(tmp_path / "sessions")]
    )

    assert result.exit_code == 0, result.output
    assert "Resumable session for `atlas.pdf`." in result.output
    assert "Chunks acknowledged: 2/3" in result.output
    assert "Pages: 12" in result.output
    assert "Images collected: 1" in result.output


def test_status_reads_session_dir_from_environment(
    pdf_factory: PdfFactory, tmp_path: Path, monkeypatch: MonkeyPatch
) -> None:
    """`EPUBFORGE_SESSION_DIR` should apply when no flag or config is given."""

    pdf_path = pdf_factory("atlas.pdf")
    _seed_session(pdf_path, tmp_path / "env-sessions")
    monkeypatch.setenv("EPUBFORGE_SESSION_DIR", str(tmp_path / "env-sessions"))

    result = CliRunner().invoke(app, ["status", str(pdf_path)])

    assert result.exit_code == 0, result.output
    assert "Chunks acknowledged: 1/3" in result.output


def test_status_discards_corrupt_session(pdf_factory: PdfFactory, tmp_path: Path) -> None:
    """A session file that no longer decodes should be removed and reported as absent."""

    pdf_path = pdf_factory("atlas.pdf")
    store = FileSessionStore(tmp_path / "sessions")
    session_path = store.path_for(Document.from_path(pdf_path).identity_key)
    session_path.parent.mkdir(parents=True)
    session_path.write_text("{not json", encoding="utf-8")

    result = CliRunner().invoke(
        app, ["status", str(pdf_path), "--session-dir", str(tmp_path / "sessions")]
    )

    assert result.exit_code == 0, result.output
    assert "No resumable session for `atlas.pdf`." in result.output
    assert not session_path.exists()


def test_reset_discards_existing_session(pdf_factory: PdfFactory, tmp_path: Path) -> None:
    """Reset should delete the saved session and report it."""

    pdf_path = pdf_factory("atlas.pdf")
    session_dir = tmp_path / "sessions"
    _seed_session(pdf_path, session_dir)
    runner = CliRunner()

    result = runner.invoke(app, ["reset", str(pdf_path), "--session-dir", str(session_dir)])

    assert result.exit_code == 0, result.output
    assert "Unfinished session for `atlas.pdf` discarded." in result.output
    assert not list(session_dir.glob("*.json"))

    again = runner.invoke(app, ["reset", str(pdf_path), "--session-dir", str(session_dir)])

    assert again.exit_code == 0, again.output
    assert "No unfinished session for `atlas.pdf`." in again.output


def test_session_commands_report_missing_input(tmp_path: Path) -> None:
    """Session commands should fail at the input stage when the PDF is missing."""

    missing = tmp_path / "missing.pdf"

    result = CliRunner().invoke(app, ["reset", str(missing)])

    assert result.exit_code == 1
    assert "reset failed at stage `input`: Input PDF not found:" in result.output
