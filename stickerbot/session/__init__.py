"""会话：键推导、存储与按键串行化。"""

from stickerbot.session.keys import resolve_session_key
from stickerbot.session.locks import KeyedLocks
from stickerbot.session.manager import (
    MemorySessionStore,
    SceneState,
    Session,
    SessionManager,
    SessionStore,
)

__all__ = [
    "KeyedLocks",
    "MemorySessionStore",
    "SceneState",
    "Session",
    "SessionManager",
    "SessionStore",
    "resolve_session_key",
]
