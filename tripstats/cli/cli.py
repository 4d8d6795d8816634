"""Main CLI entry point for tripstats.

Invoked without a subcommand (as the assistant's status-line hook does) it
prints the brief status line. ``tripstats trip`` prints the detailed report.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from tripstats import __version__
from tripstats.cli.render import (
    EMPTY_STATUS_LINE,
    ERROR_STATUS_LINE,
    render_status_line,
    render_trip_report,
)
from tripstats.core.activity import parse_activity
from tripstats.core.cache import SessionCacheStore
from tripstats.core.config import load_billing_config
from tripstats.core.session import SessionSnapshot, find_current_session, load_session_snapshot
from tripstats.core.status_input import UNKNOWN_MODEL, read_status_input
from tripstats.core.transcript import TranscriptAggregator
from tripstats.utils.log import enable_file_logging, get_logger

console = Console()
logger = get_logger()


def _resolve_snapshot(ctx: click.Context) -> Optional[SessionSnapshot]:
    """Locate the session from stdin (hook mode) or the working directory."""
    options = ctx.find_root().obj
    projects_root: Optional[Path] = options.get("projects_root")
    cache_dir: Optional[Path] = options.get("cache_dir")

    payload = read_status_input(click.get_text_stream("stdin"))
    session_id: Optional[str] = None
    transcript_path: Optional[str] = None
    model_name = UNKNOWN_MODEL
    context = None

    if payload is not None:
        session_id = payload.session_id
        transcript_path = payload.transcript_path
        model_name = payload.model_name
        context = payload.context_window_snapshot()
    else:
        found = find_current_session(Path.cwd(), projects_root)
        if found is None:
            logger.debug("[cli] No transcript found for working directory")
            return None
        session_id, path = found
        transcript_path = str(path)

    if not transcript_path:
        return None

    logger.debug(
        "[cli] Loading session snapshot",
        extra={"session_id": session_id, "transcript_path": transcript_path},
    )
    return load_session_snapshot(
        Path(transcript_path),
        session_id=session_id,
        context=context,
        model_name=model_name,
        billing=options["billing"],
        store=SessionCacheStore(cache_dir),
        aggregator=TranscriptAggregator(projects_root),
    )


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--projects-root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding per-project transcripts (default: ~/.claude/projects)",
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for cached session results (default: ~/.claude/session-stats)",
)
@click.pass_context
def cli(ctx: click.Context, projects_root: Optional[Path], cache_dir: Optional[Path]) -> None:
    """Tripstats - session analytics for the assistant status line"""
    enable_file_logging()
    ctx.obj = {
        "projects_root": projects_root,
        "cache_dir": cache_dir,
        "billing": load_billing_config(),
    }
    if ctx.invoked_subcommand is None:
        ctx.invoke(status_cmd)


@cli.command(name="status")
@click.pass_context
def status_cmd(ctx: click.Context) -> None:
    """Print the session summary and live activity lines"""
    snapshot = _resolve_snapshot(ctx)
    if snapshot is None:
        click.echo(EMPTY_STATUS_LINE)
        return
    activity = (
        parse_activity(snapshot.transcript_path) if snapshot.transcript_path is not None else None
    )
    click.echo(render_status_line(snapshot, ctx.find_root().obj["billing"], activity))


@cli.command(name="trip")
@click.pass_context
def trip_cmd(ctx: click.Context) -> None:
    """Print the detailed session report"""
    snapshot = _resolve_snapshot(ctx)
    if snapshot is None:
        console.print("[yellow]No session transcript found for this directory.[/yellow]")
        return
    render_trip_report(console, snapshot, ctx.find_root().obj["billing"])


@cli.command(name="cleanup")
@click.option("--max-age-hours", type=float, default=24.0, show_default=True)
@click.option("--max-count", type=click.IntRange(min=0), default=50, show_default=True)
@click.pass_context
def cleanup_cmd(ctx: click.Context, max_age_hours: float, max_count: int) -> None:
    """Prune old cached session results"""
    cache_dir = (ctx.find_root().obj or {}).get("cache_dir")
    removed = SessionCacheStore(cache_dir).cleanup(max_age_hours=max_age_hours, max_count=max_count)
    console.print(f"Removed {removed} cached session{'' if removed == 1 else 's'}")


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(130)
    except SystemExit:
        raise
    except (RuntimeError, ValueError, TypeError, OSError, click.ClickException) as e:
        logger.warning(
            "[cli] Fatal error in main CLI entrypoint: %s: %s",
            type(e).__name__,
            e,
        )
        # The hook renders whatever is on stdout; keep the status line alive.
        click.echo(ERROR_STATUS_LINE)


if __name__ == "__main__":
    main()
