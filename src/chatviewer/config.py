"""Central configuration for paths and constants."""

import os
from pathlib import Path

# Data directory — override with CHATVIEWER_DATA_DIR env var
DATA_DIR = Path(
    os.environ.get("CHATVIEWER_DATA_DIR", str(Path.home() / ".chatviewer"))
)

# Database path
SQLITE_PATH = DATA_DIR / "chat_sessions.db"

# Session list previews
PREVIEW_MAX_CHARS = 40
PREVIEW_ELLIPSIS = "..."
EMPTY_PREVIEW = "No messages yet"  # shown after a bulk load
NEW_SESSION_PREVIEW = "New session started"  # shown after a live change event

# Legacy line format prefixes, mapped to the turn author
LEGACY_PREFIXES = {"user:-": "user", "bot:-": "bot"}

# Change feed polling interval in seconds
POLL_INTERVAL = float(os.environ.get("CHATVIEWER_POLL_INTERVAL", "1.0"))

LOG_LEVEL = os.environ.get("CHATVIEWER_LOG_LEVEL", "WARNING")
