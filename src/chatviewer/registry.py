"""Ordered, deduplicated list of session summaries kept in step with change events."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from .config import EMPTY_PREVIEW, NEW_SESSION_PREVIEW
from .models import ChangeEvent, SessionRow, SessionSummary
from .parser import derive_preview, normalize

logger = logging.getLogger(__name__)


def _as_row(row: SessionRow | Mapping[str, Any]) -> SessionRow:
    if isinstance(row, SessionRow):
        return row
    return SessionRow.model_validate(row)


def _as_event(event: ChangeEvent | Mapping[str, Any]) -> ChangeEvent | None:
    if isinstance(event, ChangeEvent):
        return event
    try:
        return ChangeEvent.model_validate(event)
    except ValidationError:
        return None


class SessionRegistry:
    """Single owner of the session list shown by the viewer.

    ``load_all`` replaces the list from a store snapshot, ``apply_change`` merges
    one change event, ``mark_seen`` clears the unseen flag. ``sessions`` is the
    read side.
    """

    def __init__(self):
        self._sessions: list[SessionSummary] = []

    @property
    def sessions(self) -> list[SessionSummary]:
        return list(self._sessions)

    def get(self, session_id: str) -> SessionSummary | None:
        for summary in self._sessions:
            if summary.id == session_id:
                return summary
        return None

    def load_all(
        self, rows: Iterable[SessionRow | Mapping[str, Any]]
    ) -> list[SessionSummary]:
        """Build the list from a bulk snapshot, keeping the store's ordering."""
        summaries: list[SessionSummary] = []
        seen_ids: set[str] = set()

        for raw_row in rows:
            try:
                row = _as_row(raw_row)
            except ValidationError as exc:
                session_id = raw_row.get("session_id") if isinstance(raw_row, Mapping) else None
                logger.warning("Skipping invalid session row %r: %s", session_id, exc)
                continue

            # Snapshot is newest first, so the first occurrence of an id wins
            if row.session_id in seen_ids:
                logger.warning("Duplicate session '%s' in snapshot, keeping newest", row.session_id)
                continue
            seen_ids.add(row.session_id)

            turns = normalize(row.messages)
            summaries.append(
                SessionSummary(
                    id=row.session_id,
                    preview=derive_preview(turns, EMPTY_PREVIEW),
                    last_updated=row.updated_at or datetime.now(timezone.utc),
                    has_unseen_update=False,
                )
            )

        self._sessions = summaries
        return self.sessions

    def apply_change(
        self,
        event: ChangeEvent | Mapping[str, Any],
        selected_id: str | None,
    ) -> list[SessionSummary]:
        """Merge one upsert event and re-sort newest first.

        ``selected_id`` must be the selection at the time the event is processed.
        Events without a session id leave the list untouched.
        """
        parsed = _as_event(event)
        row = parsed.row() if parsed is not None else None
        if row is None:
            return self.sessions

        turns = normalize(row.messages)
        updated = SessionSummary(
            id=row.session_id,
            preview=derive_preview(turns, NEW_SESSION_PREVIEW),
            last_updated=row.updated_at or datetime.now(timezone.utc),
            has_unseen_update=row.session_id != selected_id,
        )

        others = [s for s in self._sessions if s.id != row.session_id]
        # sorted() is stable, so the fresh summary wins timestamp ties
        self._sessions = sorted(
            [updated, *others], key=lambda s: s.last_updated, reverse=True
        )
        return self.sessions

    def mark_seen(self, session_id: str) -> SessionSummary | None:
        for idx, summary in enumerate(self._sessions):
            if summary.id == session_id:
                if summary.has_unseen_update:
                    summary = summary.model_copy(update={"has_unseen_update": False})
                    self._sessions[idx] = summary
                return summary
        return None

    def search(self, term: str) -> list[SessionSummary]:
        """Case-insensitive filter on session id and preview, keeping order."""
        needle = term.strip().lower()
        if not needle:
            return self.sessions
        return [
            s
            for s in self._sessions
            if needle in s.id.lower() or needle in s.preview.lower()
        ]
