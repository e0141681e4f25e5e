from __future__ import annotations

import time
from abc import ABC, abstractmethod

from auth.models import PendingAuth
from storefront.constants import DEFAULT_PENDING_AUTH_TTL_SECONDS


class PendingAuthStore(ABC):
    """State token -> PKCE verifier, single-use and time-bounded.

    Eviction is lazy: ``sweep_expired`` runs on each new authorization request,
    so memory stays bounded only as long as authorizations keep arriving at a
    normal rate. Implementations backed by a shared store must make ``consume``
    an atomic get-and-delete.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_PENDING_AUTH_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds

    def is_expired(self, pending: PendingAuth, *, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current - pending.created_at > self.ttl_seconds

    @abstractmethod
    async def put(self, state: str, code_verifier: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def consume(self, state: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def sweep_expired(self) -> int:
        raise NotImplementedError


class MemoryPendingAuthStore(PendingAuthStore):
    def __init__(self, ttl_seconds: int = DEFAULT_PENDING_AUTH_TTL_SECONDS) -> None:
        super().__init__(ttl_seconds)
        self.entries: dict[str, PendingAuth] = {}

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, state: object) -> bool:
        return state in self.entries

    async def put(self, state: str, code_verifier: str) -> None:
        self.entries[state] = PendingAuth(code_verifier=code_verifier, created_at=time.time())

    async def consume(self, state: str) -> str | None:
        # Single pop, no await in between: only one caller can win a state.
        pending = self.entries.pop(state, None)
        if pending is None or self.is_expired(pending):
            return None
        return pending.code_verifier

    async def sweep_expired(self) -> int:
        now = time.time()
        expired_states = [
            state for state, pending in self.entries.items() if self.is_expired(pending, now=now)
        ]
        for state in expired_states:
            del self.entries[state]
        return len(expired_states)
