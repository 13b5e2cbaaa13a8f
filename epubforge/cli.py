"""Command-line interface for epubforge.

Responsibilities:
- Expose user-facing commands for conversion, session inspection, and credentials.
- Convert CLI arguments into `ConverterConfig` and run the conversion pipeline.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

import typer

from .cli_rendering import (
    echo_conversion_summary,
    echo_session_status,
    exit_with_command_error,
)
from .cli_runtime import resolve_provider_runtime_sources
from .config import ConfigLoader, ConverterConfig, RuntimeConfigSources
from .credentials import create_credential_store
from .errors import PipelineStageError
from .io.session_store import FileSessionStore
from .llm.retry import RetryPolicy
from .models.datatypes import Document, Progress
from .parsing import normalize_optional_string
from .pipeline import ConversionPipeline
from .provider_factory import ProviderFactory
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="epubforge",
    no_args_is_help=True,
    help="Convert PDF documents into reflowable EPUB books with a chat model.",
)

_RESUME_PROMPT = (
    "An unfinished session was found for this file. "
    "Do you want to resume from where you left off?"
)


class ConversionProgressIndicator:
    """Render deterministic progress lines for long-running conversions."""

    def __init__(self, command_name: str) -> None:
        """Initialize progress indicator metadata for a command invocation."""

        self._command_name = command_name

    def on_progress(self, progress: Progress) -> None:
        """Print one progress line for a pipeline progress update."""

        eta = f" eta=\"{progress.eta_text}\"" if progress.eta_text else ""
        typer.echo(
            f"[progress] command={self._command_name} {progress.percent:5.1f}% "
            f"elapsed={progress.elapsed_text}{eta} {progress.message}"
        )


def _load_yaml_config(config_path: Path | None) -> ConverterConfig | None:
    """Load a YAML config file when requested and map failures to stage errors."""

    if config_path is None:
        return None

    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc
    except Exception as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Failed to load config file `{config_path}`: {exc}",
            hint="Verify YAML syntax and file permissions.",
        ) from exc


def _resolve_command_base_config(
    config_file: Path | None,
    input_pdf: Path | None,
    out: Path | None = None,
    session_dir: Path | None = None,
    title: str | None = None,
    throttle_seconds: float | None = None,
) -> ConverterConfig:
    """Resolve effective command config from YAML defaults and explicit CLI overrides."""

    loaded_config = _load_yaml_config(config_file)

    if loaded_config is None:
        if input_pdf is None:
            raise PipelineStageError(
                stage="config",
                detail="Input PDF path is required when `--config` is not provided.",
                hint="Pass `<input.pdf>` or use `--config <path.yaml>` with `input_pdf`.",
            )
        loaded_config = ConverterConfig(input_pdf=input_pdf)
        env_session_dir = normalize_optional_string(os.environ.get("EPUBFORGE_SESSION_DIR"))
        if env_session_dir is not None:
            loaded_config.session_dir = Path(env_session_dir)

    return ConverterConfig(
        input_pdf=input_pdf if input_pdf is not None else loaded_config.input_pdf,
        output_dir=out if out is not None else loaded_config.output_dir,
        session_dir=session_dir if session_dir is not None else loaded_config.session_dir,
        provider=loaded_config.provider,
        model=loaded_config.model,
        api_key=loaded_config.api_key,
        throttle_seconds=(
            throttle_seconds if throttle_seconds is not None else loaded_config.throttle_seconds
        ),
        max_attempts=loaded_config.max_attempts,
        initial_retry_delay_seconds=loaded_config.initial_retry_delay_seconds,
        request_timeout_seconds=loaded_config.request_timeout_seconds,
        title=normalize_optional_string(title) or loaded_config.title,
        extra=dict(loaded_config.extra),
    )


def _apply_runtime_sources(
    base_config: ConverterConfig,
    runtime_cli_values: dict[str, str],
    runtime_secure_values: dict[str, str],
) -> ConverterConfig:
    """Attach runtime source mappings while keeping base config defaults intact."""

    base_config.runtime_sources = RuntimeConfigSources(
        cli=runtime_cli_values,
        secure=runtime_secure_values,
        env=os.environ,
    )
    return base_config


def _load_document(input_pdf: Path) -> Document:
    """Read the input PDF and map file-system failures to stage errors."""

    try:
        return Document.from_path(input_pdf)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="input",
            detail=f"Input PDF not found: `{input_pdf}`.",
            hint="Check the path and rerun.",
        ) from exc
    except OSError as exc:
        raise PipelineStageError(
            stage="input",
            detail=f"Failed to read input PDF `{input_pdf}`: {exc}",
            hint="Verify file permissions and rerun.",
        ) from exc


def _decide_resume(
    pipeline: ConversionPipeline,
    document: Document,
    resume: bool | None,
    start_over: bool,
) -> bool:
    """Apply the resume policy: explicit flags first, then ask when a session exists."""

    if start_over:
        pipeline.reset(document)
        return False
    if resume is not None:
        return resume
    if pipeline.find_resumable_session(document) is None:
        return False
    return typer.confirm(_RESUME_PROMPT, default=True)


def _write_archive(output_dir: Path, document: Document, archive: bytes) -> Path:
    """Write the EPUB archive as `<output_dir>/<stem>.epub`."""

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / f"{document.stem}.epub"
        output_path.write_bytes(archive)
    except OSError as exc:
        raise PipelineStageError(
            stage="write",
            detail=f"Failed to write EPUB into `{output_dir}`: {exc}",
            hint="Check `--out` permissions and free disk space.",
        ) from exc
    return output_path


@app.command("convert")
def convert_command(
    input_pdf: Annotated[
        Path | None,
        typer.Argument(
            help="Path to source PDF. Required unless provided by `--config`.",
        ),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option("--out", help="Output directory (overrides config file value)."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Path to YAML config file with command defaults.",
        ),
    ] = None,
    session_dir: Annotated[
        Path | None,
        typer.Option("--session-dir", help="Directory holding resumable sessions."),
    ] = None,
    resume: Annotated[
        bool | None,
        typer.Option(
            "--resume/--no-resume",
            help="Resume an unfinished session without asking, or ignore it.",
        ),
    ] = None,
    start_over: Annotated[
        bool,
        typer.Option(
            "--start-over",
            help="Discard any unfinished session and convert from the first page.",
        ),
    ] = False,
    title: Annotated[
        str | None,
        typer.Option("--title", help="Fallback book title when the model sets none."),
    ] = None,
    provider: Annotated[
        str | None, typer.Option("--provider", help="Chat provider id.")
    ] = None,
    model: Annotated[
        str | None, typer.Option("--model", help="Chat model id override.")
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option(
            "--api-key",
            help="Provider API key override. Prefer `--prompt-api-key` to avoid shell history.",
        ),
    ] = None,
    prompt_api_key: Annotated[
        bool,
        typer.Option(
            "--prompt-api-key",
            help="Prompt for API key with hidden input (never echoed).",
        ),
    ] = False,
    store_api_key: Annotated[
        bool,
        typer.Option(
            "--store-api-key/--no-store-api-key",
            help="Persist CLI-entered API key to secure credential storage.",
        ),
    ] = True,
    throttle_seconds: Annotated[
        float | None,
        typer.Option(
            "--throttle-seconds",
            min=0.0,
            help="Pause between chunk submissions (default 1.5).",
        ),
    ] = None,
) -> None:
    """Convert a PDF into an EPUB, resuming unfinished sessions when possible."""

    if resume is not None and start_over:
        exit_with_command_error(
            "convert",
            PipelineStageError(
                stage="config",
                detail="`--resume/--no-resume` and `--start-over` cannot be used together.",
                hint="Use `--start-over` alone to discard the unfinished session.",
            ),
        )

    try:
        runtime_cli_values, runtime_secure_values = resolve_provider_runtime_sources(
            provider=provider,
            model=model,
            api_key=api_key,
            prompt_api_key=prompt_api_key,
            store_api_key=store_api_key,
            credential_store_factory=create_credential_store,
        )
        base_config = _resolve_command_base_config(
            config_file=config_file,
            input_pdf=input_pdf,
            out=out,
            session_dir=session_dir,
            title=title,
            throttle_seconds=throttle_seconds,
        )
        config = _apply_runtime_sources(
            base_config=base_config,
            runtime_cli_values=runtime_cli_values,
            runtime_secure_values=runtime_secure_values,
        )
        try:
            config.validate()
            runtime = config.resolved_provider_runtime()
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=str(exc),
                hint="Fix provider/model settings and rerun.",
            ) from exc

        document = _load_document(config.input_pdf)
        run_logger = RunLogger()
        run_logger.log_event("config", "resolved", **runtime.as_log_context())
        conversation_client = ProviderFactory.create_conversation_client(
            provider_id=runtime.provider,
            model=runtime.model,
            api_key=runtime.api_key,
            retry_policy=RetryPolicy(
                max_attempts=config.max_attempts,
                initial_delay_seconds=config.initial_retry_delay_seconds,
                run_logger=run_logger,
            ),
            timeout_seconds=config.request_timeout_seconds,
            run_logger=run_logger,
        )
        progress = ConversionProgressIndicator(command_name="convert")
        pipeline = ConversionPipeline(
            session_store=FileSessionStore(config.session_dir, run_logger=run_logger),
            conversation_client=conversation_client,
            run_logger=run_logger,
            progress_callback=progress.on_progress,
            throttle_seconds=config.throttle_seconds,
        )
        should_resume = _decide_resume(pipeline, document, resume, start_over)
        result = pipeline.convert(document, resume=should_resume, title=config.title)
        output_path = _write_archive(config.output_dir, document, result.archive)
    except KeyboardInterrupt:
        typer.secho(
            "convert interrupted. Progress up to the last acknowledged chunk is saved.",
            fg=typer.colors.YELLOW,
            err=True,
        )
        raise typer.Exit(code=130)
    except Exception as exc:
        exit_with_command_error("convert", exc)

    echo_conversion_summary(result, output_path)


def _open_session_store(
    input_pdf: Path, config_file: Path | None, session_dir: Path | None
) -> tuple[Document, FileSessionStore]:
    """Resolve the document and its session store for session-management commands."""

    config = _resolve_command_base_config(
        config_file=config_file,
        input_pdf=input_pdf,
        session_dir=session_dir,
    )
    document = _load_document(config.input_pdf)
    return document, FileSessionStore(config.session_dir)


@app.command("status")
def status_command(
    input_pdf: Annotated[Path, typer.Argument(help="Path to source PDF.")],
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file with command defaults."),
    ] = None,
    session_dir: Annotated[
        Path | None,
        typer.Option("--session-dir", help="Directory holding resumable sessions."),
    ] = None,
) -> None:
    """Show whether an unfinished session exists for a PDF."""

    try:
        document, store = _open_session_store(input_pdf, config_file, session_dir)
        session = store.load(document.identity_key)
    except Exception as exc:
        exit_with_command_error("status", exc)

    echo_session_status(document.name, session)


@app.command("reset")
def reset_command(
    input_pdf: Annotated[Path, typer.Argument(help="Path to source PDF.")],
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file with command defaults."),
    ] = None,
    session_dir: Annotated[
        Path | None,
        typer.Option("--session-dir", help="Directory holding resumable sessions."),
    ] = None,
) -> None:
    """Discard the unfinished session for a PDF so the next run starts over."""

    try:
        document, store = _open_session_store(input_pdf, config_file, session_dir)
        existed = store.load(document.identity_key) is not None
        store.delete(document.identity_key)
    except Exception as exc:
        exit_with_command_error("reset", exc)

    if existed:
        typer.echo(f"Unfinished session for `{document.name}` discarded.")
    else:
        typer.echo(f"No unfinished session for `{document.name}`.")


@app.command("credentials")
def credentials_command(
    set_api_key: Annotated[
        bool,
        typer.Option(
            "--set-api-key",
            help="Prompt for API key with hidden input and store it securely.",
        ),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option(
            "--clear-api-key",
            help="Clear stored API key from secure credential storage.",
        ),
    ] = False,
) -> None:
    """Manage securely stored CLI credentials."""

    if set_api_key and clear_api_key:
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail="`--set-api-key` and `--clear-api-key` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )

    credential_store = create_credential_store()
    if set_api_key:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                "OpenAI API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set-api-key`.",
                ),
            )
        try:
            credential_store.set_api_key(prompted_api_key)
        except Exception as exc:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo("API key stored in secure credential storage.")
        return

    if clear_api_key:
        removed = credential_store.clear_api_key()
        if removed:
            typer.echo("Stored API key cleared from secure credential storage.")
        else:
            typer.echo("No stored API key found in secure credential storage.")
        return

    availability = "available" if credential_store.is_available() else "unavailable"
    has_stored_key = credential_store.get_api_key() is not None
    status = "present" if has_stored_key else "not set"
    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored OpenAI API key: {status}")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
