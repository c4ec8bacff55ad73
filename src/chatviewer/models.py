"""Data models for chat sessions, change events and list summaries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    author: Literal["user", "bot"]
    content: str = ""
    # False when the stored content was not a string and had to be rendered
    content_is_text: bool = Field(default=True, exclude=True, repr=False)


class SessionRow(BaseModel):
    """One row of the chat_sessions table as seen by the session list."""

    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(min_length=1)
    messages: Any = None
    updated_at: datetime | None = None

    @field_validator("updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # Naive and aware timestamps must stay comparable when sorting
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class SessionDetail(BaseModel):
    session_id: str
    messages: Any = None
    origin_info: Any = None


class ChangeEvent(BaseModel):
    """A row insert or update pushed by the change feed.

    Only ``new`` matters to the session list; ``event_type`` is kept for display.
    """

    event_type: str = "UPDATE"
    new: dict[str, Any] | None = None

    def row(self) -> SessionRow | None:
        """Resolve the event payload to a row, or None when it carries no session id."""
        if not self.new or not self.new.get("session_id"):
            return None
        try:
            return SessionRow.model_validate(self.new)
        except ValidationError:
            return None


class SessionSummary(BaseModel):
    id: str
    preview: str
    last_updated: datetime
    has_unseen_update: bool = False


class ActiveTranscript(BaseModel):
    session_id: str
    turns: list[ChatTurn] = []
    origin_info: Any = None
