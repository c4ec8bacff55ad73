"""Viewer state: session list, current selection and the active transcript."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from .models import ActiveTranscript, ChangeEvent, SessionDetail, SessionRow, SessionSummary
from .parser import normalize
from .registry import SessionRegistry
from .storage import StoreError

logger = logging.getLogger(__name__)


class SessionSource(Protocol):
    """What the viewer needs from the session store."""

    async def fetch_sessions(self) -> list[SessionRow | Mapping[str, Any]]:
        """All rows, most recently updated first, not yet validated."""
        ...

    async def fetch_session(self, session_id: str) -> SessionDetail:
        """Exactly one row for the session, or raise a StoreError."""
        ...

    def subscribe(self) -> AsyncIterator[ChangeEvent]:
        """Row change events in arrival order."""
        ...


class SessionViewer:
    """Single owner of the viewer state, driven from one asyncio event loop.

    Two sources mutate the session list (``refresh`` and change events through
    ``handle_change``); the presentation reads ``sessions``, ``active`` and the
    loading flags.
    """

    def __init__(self, source: SessionSource, registry: SessionRegistry | None = None):
        self.source = source
        self.registry = registry or SessionRegistry()
        self.selected_id: str | None = None
        self.active: ActiveTranscript | None = None
        self.is_loading_sessions = False
        self.is_loading_transcript = False
        # Bumped on every selection; a transcript response is applied only if
        # its generation is still current
        self._generation = 0

    @property
    def sessions(self) -> list[SessionSummary]:
        return self.registry.sessions

    async def refresh(self) -> list[SessionSummary]:
        """Reload the session list from the store."""
        self.is_loading_sessions = True
        try:
            rows = await self.source.fetch_sessions()
        except StoreError:
            logger.exception("Error fetching sessions")
            return self.registry.sessions
        finally:
            self.is_loading_sessions = False

        return self.registry.load_all(rows)

    async def select(self, session_id: str) -> ActiveTranscript | None:
        """Make ``session_id`` the active session and load its transcript."""
        if session_id == self.selected_id:
            return self.active

        self._generation += 1
        generation = self._generation
        self.selected_id = session_id
        self.active = ActiveTranscript(session_id=session_id)
        self.is_loading_transcript = True
        self.registry.mark_seen(session_id)

        try:
            detail = await self.source.fetch_session(session_id)
        except StoreError as exc:
            logger.error("Error fetching messages for session %s: %s", session_id, exc)
            if generation == self._generation:
                self.is_loading_transcript = False
            return None

        if generation != self._generation:
            logger.debug("Discarding stale transcript for session %s", session_id)
            return None

        self.active = ActiveTranscript(
            session_id=session_id,
            turns=normalize(detail.messages),
            origin_info=detail.origin_info,
        )
        self.registry.mark_seen(session_id)
        self.is_loading_transcript = False
        return self.active

    def handle_change(self, event: ChangeEvent | Mapping[str, Any]) -> list[SessionSummary]:
        """Apply one change event against the selection as it is right now."""
        if not isinstance(event, ChangeEvent):
            try:
                event = ChangeEvent.model_validate(event)
            except ValidationError:
                return self.registry.sessions

        sessions = self.registry.apply_change(event, self.selected_id)

        row = event.row()
        if row is not None and row.session_id == self.selected_id and self.active is not None:
            self.active = ActiveTranscript(
                session_id=row.session_id,
                turns=normalize(row.messages),
                origin_info=self.active.origin_info,
            )
        return sessions

    async def watch(
        self, on_change: Callable[[ChangeEvent, list[SessionSummary]], None] | None = None
    ):
        """Consume the change subscription, one event at a time, until it ends."""
        async for event in self.source.subscribe():
            sessions = self.handle_change(event)
            if on_change is not None:
                on_change(event, sessions)
