"""Normalize persisted chat_sessions.messages values into ordered chat turns.

The messages column has been written in three encodings over time:

    structured list  ->  JSON text of that list  ->  "user:-" / "bot:-" line format

``normalize`` tries each decoder in that order and returns the first success.
It never raises: a malformed historical row becomes an empty transcript.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from typing import Any, NamedTuple

from .config import (
    EMPTY_PREVIEW,
    LEGACY_PREFIXES,
    PREVIEW_ELLIPSIS,
    PREVIEW_MAX_CHARS,
)
from .models import ChatTurn

# Split only on newlines that start a new turn, so multi-line turns stay whole
_TURN_BOUNDARY = re.compile(
    r"\r?\n(?=" + "|".join(re.escape(p) for p in LEGACY_PREFIXES) + ")"
)


class ParseResult(NamedTuple):
    ok: bool
    turns: list[ChatTurn]


_FAILED = ParseResult(False, [])


def _is_turn_like(item: Any) -> bool:
    if isinstance(item, ChatTurn):
        return True
    return (
        isinstance(item, Mapping)
        and "content" in item
        and item.get("author") in ("user", "bot")
    )


def _to_turn(item: ChatTurn | Mapping[str, Any]) -> ChatTurn:
    if isinstance(item, ChatTurn):
        return item
    content = item["content"]
    if isinstance(content, str):
        return ChatTurn(author=item["author"], content=content)
    return ChatTurn(
        author=item["author"],
        content="" if content is None else str(content),
        content_is_text=False,
    )


def _from_structured(raw: Any) -> ParseResult:
    if not isinstance(raw, (list, tuple)):
        return _FAILED
    if not all(_is_turn_like(item) for item in raw):
        return _FAILED
    return ParseResult(True, [_to_turn(item) for item in raw])


def _from_json_text(raw: Any) -> ParseResult:
    if not isinstance(raw, str):
        return _FAILED
    try:
        decoded = json.loads(raw)
    except (ValueError, RecursionError):
        return _FAILED
    return _from_structured(decoded)


def _from_legacy_text(raw: Any) -> ParseResult:
    """Parse the ``user:-hello\\nbot:-hi there`` format."""
    if not isinstance(raw, str):
        return _FAILED

    turns: list[ChatTurn] = []
    for block in _TURN_BOUNDARY.split(raw.strip()):
        block = block.strip()
        for prefix, author in LEGACY_PREFIXES.items():
            if block.startswith(prefix):
                turns.append(ChatTurn(author=author, content=block[len(prefix):].strip()))
                break

    return ParseResult(True, turns)


_DECODERS: tuple[Callable[[Any], ParseResult], ...] = (
    _from_structured,
    _from_json_text,
    _from_legacy_text,
)


def normalize(raw: Any) -> list[ChatTurn]:
    """Convert a persisted messages value of any shape into an ordered transcript."""
    for decode in _DECODERS:
        result = decode(raw)
        if result.ok:
            return result.turns
    return []


def derive_preview(turns: list[ChatTurn], placeholder: str = EMPTY_PREVIEW) -> str:
    """Preview text for the session list: the start of the last turn."""
    if not turns or not turns[-1].content_is_text:
        return placeholder
    content = turns[-1].content
    if len(content) > PREVIEW_MAX_CHARS:
        return content[:PREVIEW_MAX_CHARS] + PREVIEW_ELLIPSIS
    return content
