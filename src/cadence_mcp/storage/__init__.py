"""Storage abstractions for Cadence MCP."""

from .session_store import DEFAULT_STATE_FILE, SessionStore, SessionStoreError

__all__ = [
    "DEFAULT_STATE_FILE",
    "SessionStore",
    "SessionStoreError",
]
