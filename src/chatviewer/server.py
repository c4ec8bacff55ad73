"""FastMCP server exposing read-only views of the chat sessions."""

from __future__ import annotations

import json
import logging
import sys

from mcp.server.fastmcp import FastMCP

from .config import DATA_DIR, SQLITE_PATH
from .parser import normalize
from .registry import SessionRegistry
from .storage import SessionLookupError, SessionStore, StoreError

# Logging to stderr only — stdout is the MCP JSON-RPC transport
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "chatviewer",
    instructions=(
        "Browse stored chat sessions between users and the bot. "
        "Use list_sessions to see sessions, newest first, optionally filtered. "
        "Use get_transcript to read one session's full transcript. "
        "Use get_stats for an overview of the stored data."
    ),
)

# Singleton store — reused across tool calls
_store: SessionStore | None = None


def _get_store() -> SessionStore:
    global _store
    if _store is None:
        _store = SessionStore(SQLITE_PATH)
    return _store


def _check_data_exists() -> str | None:
    """Return an error message if there is no session database."""
    if not SQLITE_PATH.exists():
        return f"No chat session database found at {SQLITE_PATH}."
    return None


@mcp.tool()
def list_sessions(search: str | None = None) -> str:
    """List chat sessions, most recently updated first.

    Args:
        search: Optional text matched against session ids and message previews
    """
    err = _check_data_exists()
    if err:
        return err

    registry = SessionRegistry()
    try:
        registry.load_all(_get_store().fetch_sessions())
    except StoreError as exc:
        logger.error("Error fetching sessions: %s", exc)
        return f"Could not load sessions: {exc}"

    summaries = registry.search(search) if search else registry.sessions
    if not summaries:
        if search:
            return f"No sessions found matching '{search}'."
        return "No sessions found."

    lines = [f"Sessions ({len(summaries)}):\n"]
    for i, s in enumerate(summaries, 1):
        stamp = s.last_updated.strftime("%Y-%m-%d %H:%M")
        lines.append(f"{i}. `{s.id}` ({stamp})")
        lines.append(f"   Last message: {s.preview}")

    lines.append("\nUse get_transcript(session_id) to read a full session.")
    return "\n".join(lines)


@mcp.tool()
def get_transcript(session_id: str) -> str:
    """Retrieve the full transcript of one chat session.

    Args:
        session_id: The session id (from list_sessions)
    """
    err = _check_data_exists()
    if err:
        return err

    try:
        detail = _get_store().fetch_session(session_id)
    except SessionLookupError as exc:
        return str(exc)
    except StoreError as exc:
        logger.error("Error fetching messages for session %s: %s", session_id, exc)
        return f"Could not load session {session_id}: {exc}"

    turns = normalize(detail.messages)
    lines = [f"# Session {detail.session_id}"]
    if detail.origin_info is not None:
        origin = detail.origin_info
        lines.append(f"Origin: {origin if isinstance(origin, str) else json.dumps(origin)}")
    lines.extend([f"Messages: {len(turns)}", "", "---", ""])

    if not turns:
        lines.append("No messages yet.")

    for turn in turns:
        role = "**User**" if turn.author == "user" else "**Bot**"
        lines.append(f"{role}:")
        lines.append(turn.content)
        lines.append("")

    return "\n".join(lines)


@mcp.tool()
def get_stats() -> str:
    """Get statistics about the stored chat sessions."""
    err = _check_data_exists()
    if err:
        return err

    try:
        stats = _get_store().get_stats()
    except StoreError as exc:
        return f"Could not load statistics: {exc}"

    lines = [
        "# Chat Session Statistics",
        "",
        f"- **Sessions**: {stats['total_sessions']:,}",
        f"- **Rows**: {stats['total_rows']:,}",
    ]
    if stats["oldest_update"]:
        lines.append(f"- **Updated**: {stats['oldest_update']} → {stats['newest_update']}")

    lines.append(f"\n*Data stored in: {DATA_DIR}*")
    return "\n".join(lines)
