"""chatviewer — read-only admin viewer for stored chat sessions."""

__version__ = "0.1.0"
