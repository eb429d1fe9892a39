"""
Session Store — Where chat and debate sessions live.

WHAT THIS DOES:
Maps a client-chosen session id to its session state. The orchestrator and
chat service receive a store instead of touching a global dict, so the
in-memory table can be replaced by a persistent one without changing them.

CONCURRENCY:
No locking. Turns for one session id are expected to be serialized by the
caller; two interleaved turns on the same id are last-write-wins.

USAGE:
    store = InMemorySessionStore(DebateSession)
    session = store.get_or_create("default")
    store.get("missing")   # None
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Generic, Optional, TypeVar

from app.models.session import ChatSession, DebateSession

logger = logging.getLogger(__name__)

S = TypeVar("S")


class SessionStore(ABC, Generic[S]):
    """Abstract session table."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[S]:
        pass

    @abstractmethod
    def get_or_create(self, session_id: str) -> S:
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def list_ids(self) -> list[str]:
        pass


class InMemorySessionStore(SessionStore[S]):
    """Process-lifetime dict of sessions, lost on restart."""

    def __init__(self, factory: Callable[[str], S]):
        self._factory = factory
        self._sessions: dict[str, S] = {}

    def get(self, session_id: str) -> Optional[S]:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> S:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._factory(session_id)
            self._sessions[session_id] = session
            logger.info(f"Created {type(session).__name__} '{session_id}'")
        return session

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def list_ids(self) -> list[str]:
        return list(self._sessions)


ChatSessionStore = SessionStore[ChatSession]
DebateSessionStore = SessionStore[DebateSession]
