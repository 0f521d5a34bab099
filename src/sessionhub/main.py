"""CLI entrypoint for sessionhub."""

import logging
from pathlib import Path

import rich_click as click

from sessionhub import __version__
from sessionhub.controllers import (
    AnalyzeCommand,
    PatternsCommand,
    RunCommand,
    SessionHubCliController,
    StoreCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SessionHubCliController()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="sessionhub")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def sessionhub(log_level: str) -> None:
    """Session splitting and orchestration CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@sessionhub.command("analyze")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--text", default=None, help="Request text.")
@click.option(
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the request text from a file.",
)
@click.option("--name", default="cli-session", show_default=True, help="Session name.")
def analyze(db_path: Path | None, text: str | None, file_path: Path | None, name: str) -> None:
    """Score a request's complexity and memory footprint."""

    _emit_lines(
        CONTROLLER.analyze(
            AnalyzeCommand(db_path=db_path, text=_request_text(text, file_path), name=name),
        ),
    )


@sessionhub.command("plan")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--text", default=None, help="Request text.")
@click.option(
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the request text from a file.",
)
@click.option("--name", default="cli-session", show_default=True, help="Session name.")
def plan(db_path: Path | None, text: str | None, file_path: Path | None, name: str) -> None:
    """Analyze a request and show the split plan when a split is recommended."""

    _emit_lines(
        CONTROLLER.plan(
            AnalyzeCommand(db_path=db_path, text=_request_text(text, file_path), name=name),
        ),
    )


@sessionhub.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--text", default=None, help="Request text.")
@click.option(
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the request text from a file.",
)
@click.option("--name", default="cli-session", show_default=True, help="Session name.")
@click.option(
    "--fail-unit",
    "fail_units",
    multiple=True,
    help="Unit name or id the echo executor should fail. Can be repeated.",
)
@click.option(
    "--continue-on-failure/--stop-on-failure",
    default=False,
    show_default=True,
    help="Keep executing independent units after a failure.",
)
@click.option(
    "--pause-between",
    type=click.FloatRange(min=0),
    default=0.0,
    show_default=True,
    help="Seconds to wait between units.",
)
def run(  # noqa: PLR0913
    db_path: Path | None,
    text: str | None,
    file_path: Path | None,
    name: str,
    fail_units: tuple[str, ...],
    continue_on_failure: bool,
    pause_between: float,
) -> None:
    """Run a request end to end with the local echo executor."""

    _emit_lines(
        CONTROLLER.run(
            RunCommand(
                db_path=db_path,
                text=_request_text(text, file_path),
                name=name,
                fail_units=fail_units,
                continue_on_failure=continue_on_failure,
                pause_between_units_seconds=pause_between,
            ),
        ),
    )


@sessionhub.group()
def patterns() -> None:
    """Learned pattern commands."""


@patterns.command("stats")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def patterns_stats(db_path: Path | None) -> None:
    """Show learned pattern statistics and insights."""

    _emit_lines(CONTROLLER.pattern_stats(PatternsCommand(db_path=db_path)))


@patterns.command("recommend")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--text", default=None, help="Request text.")
@click.option(
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the request text from a file.",
)
def patterns_recommend(db_path: Path | None, text: str | None, file_path: Path | None) -> None:
    """Recommend optimizations for a request based on similar patterns."""

    _emit_lines(
        CONTROLLER.recommend(
            PatternsCommand(db_path=db_path, text=_request_text(text, file_path)),
        ),
    )


@patterns.command("prune")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--days",
    type=click.IntRange(min=1),
    default=None,
    help="Staleness window in days. Defaults to SESSIONHUB_LEARNING_PRUNE_AFTER_DAYS.",
)
def patterns_prune(db_path: Path | None, days: int | None) -> None:
    """Delete stale low-confidence patterns."""

    _emit_lines(CONTROLLER.prune_patterns(PatternsCommand(db_path=db_path, days=days)))


@sessionhub.group()
def checkpoints() -> None:
    """Checkpoint commands."""


@checkpoints.command("list")
@click.argument("session_id")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Session data directory.",
)
def checkpoints_list(session_id: str, data_dir: Path | None) -> None:
    """List checkpoints of a session, newest first."""

    _emit_lines(
        CONTROLLER.list_checkpoints(StoreCommand(data_dir=data_dir, session_id=session_id)),
    )


@sessionhub.group()
def sessions() -> None:
    """Persisted session commands."""


@sessions.command("list")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Session data directory.",
)
def sessions_list(data_dir: Path | None) -> None:
    """List persisted sessions."""

    _emit_lines(CONTROLLER.list_sessions(StoreCommand(data_dir=data_dir)))


@sessions.command("cleanup")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Session data directory.",
)
def sessions_cleanup(data_dir: Path | None) -> None:
    """Delete sessions older than the retention window."""

    _emit_lines(CONTROLLER.cleanup_sessions(StoreCommand(data_dir=data_dir)))


def _request_text(text: str | None, file_path: Path | None) -> str:
    if file_path is not None:
        return file_path.read_text(encoding="utf-8")
    if text is None or not text.strip():
        raise click.UsageError("Provide the request with --text or --file.")
    return text


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    sessionhub()
