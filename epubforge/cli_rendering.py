"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
conversion summaries, and session status rows.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer

from .errors import PipelineStageError
from .models.datatypes import ConversionResult, ConversionSession
from .pipeline.chunking import num_chunks


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_conversion_summary(result: ConversionResult, output_path: Path) -> None:
    """Print the written EPUB path and run statistics."""

    typer.echo(f"EPUB: {output_path}")
    typer.echo(f"Title: {result.title}")
    typer.echo(f"Pages: {result.total_pages}")
    typer.echo(f"Chunks: {result.chunk_count}")
    typer.echo(f"Images: {result.image_count}")
    if result.resumed_from_chunk:
        typer.echo(f"Resumed from chunk: {result.resumed_from_chunk + 1}")
    typer.echo(f"Provider retries: {result.retry_attempts}")


def echo_session_status(document_name: str, session: ConversionSession | None) -> None:
    """Print whether a resumable session exists and how far it got."""

    if session is None:
        typer.echo(f"No resumable session for `{document_name}`.")
        return

    chunk_total = num_chunks(session.total_pages)
    typer.echo(f"Resumable session for `{document_name}`.")
    typer.echo(f"Chunks acknowledged: {session.next_chunk_index}/{chunk_total}")
    typer.echo(f"Pages: {session.total_pages}")
    typer.echo(f"Images collected: {len(session.images)}")
