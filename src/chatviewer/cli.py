"""CLI interface for chatviewer."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from . import __version__
from .config import DATA_DIR, LOG_LEVEL, POLL_INTERVAL, SQLITE_PATH
from .models import ChangeEvent, SessionSummary


def _open_store():
    from .storage import SessionStore

    if not SQLITE_PATH.exists():
        raise click.ClickException(f"No session database found at {SQLITE_PATH}")
    return SessionStore(SQLITE_PATH)


def _format_summary(summary: SessionSummary, selected: bool = False) -> str:
    marker = click.style("●", fg="blue") if summary.has_unseen_update and not selected else " "
    short_id = summary.id[:8] + "..." if len(summary.id) > 8 else summary.id
    stamp = summary.last_updated.strftime("%Y-%m-%d %H:%M")
    return f"{marker} {short_id:<12} {stamp}  {summary.preview}"


def _format_origin(origin) -> str:
    return origin if isinstance(origin, str) else json.dumps(origin)


@click.group()
@click.version_option(version=__version__, prog_name="chatviewer")
@click.option(
    "--log-level",
    default=LOG_LEVEL,
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
def cli(log_level: str):
    """chatviewer — browse stored chat sessions and follow them live.

    Reads the chat_sessions table; nothing here writes to it.
    """
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.option("--search", default="", help="Filter by session id or preview text")
def sessions(search: str):
    """List sessions, most recently updated first."""
    from .registry import SessionRegistry
    from .storage import StoreError

    store = _open_store()
    registry = SessionRegistry()
    try:
        registry.load_all(store.fetch_sessions())
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        store.close()

    matches = registry.search(search)
    if not matches:
        click.echo("No sessions found.")
        return

    for summary in matches:
        click.echo(_format_summary(summary))


@cli.command()
@click.argument("session_id")
def show(session_id: str):
    """Print the full transcript of one session."""
    from .parser import normalize
    from .storage import StoreError

    store = _open_store()
    try:
        detail = store.fetch_session(session_id)
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        store.close()

    click.echo(click.style(f"Session {detail.session_id}", bold=True))
    if detail.origin_info is not None:
        click.echo(f"Origin: {_format_origin(detail.origin_info)}")
    click.echo()

    turns = normalize(detail.messages)
    if not turns:
        click.echo("No messages in this session.")
        return

    for turn in turns:
        label = click.style("User", fg="green") if turn.author == "user" else click.style("Bot", fg="blue")
        click.echo(f"{label}:")
        click.echo(turn.content)
        click.echo()


@cli.command()
@click.option("--interval", default=POLL_INTERVAL, show_default=True, help="Poll interval in seconds")
@click.option("--select", "selected", default=None, help="Session to keep selected while watching")
def watch(interval: float, selected: str | None):
    """Follow session changes live. Stop with Ctrl+C."""
    from .feed import SessionFeed
    from .storage import StoreError
    from .viewer import SessionViewer

    store = _open_store()
    viewer = SessionViewer(SessionFeed(store, poll_interval=interval))

    def on_change(event: ChangeEvent, summaries: list[SessionSummary]):
        row = event.row()
        if row is None:
            return
        click.echo(click.style(f"[{event.event_type}] {row.session_id}", bold=True))
        for summary in summaries:
            click.echo(_format_summary(summary, selected=summary.id == viewer.selected_id))
        click.echo()

    async def run():
        await viewer.refresh()
        if selected:
            await viewer.select(selected)
        for summary in viewer.sessions:
            click.echo(_format_summary(summary))
        click.echo()
        await viewer.watch(on_change)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        store.close()


@cli.command()
def stats():
    """Show statistics about the stored sessions."""
    from .storage import StoreError

    store = _open_store()
    try:
        s = store.get_stats()
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        store.close()

    click.echo()
    click.echo(click.style("Chat Session Statistics", bold=True))
    click.echo(f"  Sessions:       {s['total_sessions']:,}")
    click.echo(f"  Rows:           {s['total_rows']:,}")
    if s["oldest_update"]:
        click.echo(f"  Updated:        {s['oldest_update']} → {s['newest_update']}")
    click.echo(f"  Location:       {DATA_DIR}")
    click.echo()


@cli.command()
def serve():
    """Start the MCP server (stdio transport)."""
    if not SQLITE_PATH.exists():
        click.echo(f"Warning: No session database found at {SQLITE_PATH}", err=True)

    from .server import mcp

    mcp.run(transport="stdio")
