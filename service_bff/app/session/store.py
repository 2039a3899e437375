"""
Session storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from service_bff.app.models import Session


class SessionStore(ABC):
    """Storage backend for issued sessions."""

    @abstractmethod
    async def get(self, token: str) -> Optional[Session]:
        """Return the session for ``token``."""

    @abstractmethod
    async def add(self, session: Session) -> None:
        """Store a newly issued session."""

    @abstractmethod
    async def discard(self, token: str) -> None:
        """Forget ``token``."""

    @abstractmethod
    async def purge(self, predicate: Callable[[Session], bool]) -> int:
        """Remove all sessions matching ``predicate``; return the count."""


class InMemorySessionStore(SessionStore):
    """Process-local session store."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    async def get(self, token: str) -> Optional[Session]:
        return self._sessions.get(token)

    async def add(self, session: Session) -> None:
        self._sessions[session.token] = session

    async def discard(self, token: str) -> None:
        self._sessions.pop(token, None)

    async def purge(self, predicate: Callable[[Session], bool]) -> int:
        doomed = [token for token, session in self._sessions.items() if predicate(session)]
        for token in doomed:
            del self._sessions[token]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._sessions)
