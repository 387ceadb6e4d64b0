from __future__ import annotations

from vignette.config import Settings
from vignette.sessions import SessionStore

_SESSIONS: SessionStore | None = None


def get_sessions() -> SessionStore:
    """Process-wide session store, created on first use from the environment."""

    global _SESSIONS
    if _SESSIONS is None:
        _SESSIONS = SessionStore(settings=Settings.from_env())
    return _SESSIONS


def peek_sessions() -> SessionStore | None:
    return _SESSIONS
