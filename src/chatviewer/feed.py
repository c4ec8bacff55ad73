"""Async access to the session store: bulk read, single read and change subscription."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from .config import POLL_INTERVAL
from .models import ChangeEvent, SessionDetail
from .storage import SessionStore

logger = logging.getLogger(__name__)


class SessionFeed:
    """Runs store queries off the event loop and polls the change log."""

    def __init__(self, store: SessionStore, poll_interval: float = POLL_INTERVAL):
        self.store = store
        self.poll_interval = poll_interval

    async def fetch_sessions(self) -> list[dict]:
        return await asyncio.to_thread(self.store.fetch_sessions)

    async def fetch_session(self, session_id: str) -> SessionDetail:
        return await asyncio.to_thread(self.store.fetch_session, session_id)

    async def subscribe(self) -> AsyncIterator[ChangeEvent]:
        """Yield change events for inserts and updates made after subscribing.

        Events are yielded in change log order. Store errors end the subscription.
        """
        last_seq = await asyncio.to_thread(self.store.latest_change_seq)
        logger.debug("Subscribed to session changes after seq %d", last_seq)

        while True:
            changes = await asyncio.to_thread(self.store.changes_since, last_seq)
            for seq, event_type, row in changes:
                last_seq = seq
                yield ChangeEvent(event_type=event_type, new=row)
            await asyncio.sleep(self.poll_interval)
