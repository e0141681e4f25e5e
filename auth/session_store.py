from __future__ import annotations

import asyncio
import copy
import time
from abc import ABC, abstractmethod
from typing import Callable

from auth.models import Session
from storefront.constants import SESSION_MAX_AGE_SECONDS


class SessionStore(ABC):
    def __init__(self, max_age_seconds: int = SESSION_MAX_AGE_SECONDS) -> None:
        self.max_age_seconds = max_age_seconds

    def is_expired(self, session: Session, *, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current - session.created_at > self.max_age_seconds

    @abstractmethod
    async def get(self, session_id: str) -> Session | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, session_id: str, session: Session) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def update(
        self, session_id: str, mutate: Callable[[Session], None]
    ) -> Session | None:
        """Atomically apply ``mutate`` to the stored session and persist it.

        Returns the updated session, or None when no live session exists.
        """
        raise NotImplementedError

    @abstractmethod
    async def sweep_expired(self) -> int:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    def __init__(self, max_age_seconds: int = SESSION_MAX_AGE_SECONDS) -> None:
        super().__init__(max_age_seconds)
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def get(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self.is_expired(session):
            await self.delete(session_id)
            return None
        return copy.deepcopy(session)

    async def set(self, session_id: str, session: Session) -> None:
        self._sessions[session_id] = copy.deepcopy(session)

    def _drop_lock(self, session_id: str) -> None:
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        # A held lock stays registered until its owner releases it.
        self._drop_lock(session_id)

    async def update(
        self, session_id: str, mutate: Callable[[Session], None]
    ) -> Session | None:
        async with self._lock_for(session_id):
            session = await self.get(session_id)
            if session is not None:
                mutate(session)
                await self.set(session_id, session)
        if session is None:
            self._drop_lock(session_id)
        return session

    async def sweep_expired(self) -> int:
        now = time.time()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if self.is_expired(session, now=now)
        ]
        for session_id in expired:
            await self.delete(session_id)
        return len(expired)
