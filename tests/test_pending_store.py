import asyncio
import time

import pytest

from auth.models import PendingAuth
from auth.pending_store import MemoryPendingAuthStore


@pytest.mark.asyncio
async def test_put_then_consume() -> None:
    store = MemoryPendingAuthStore()

    await store.put("state-1", "verifier-1")

    assert await store.consume("state-1") == "verifier-1"


@pytest.mark.asyncio
async def test_consume_is_single_use() -> None:
    store = MemoryPendingAuthStore()
    await store.put("state-1", "verifier-1")

    first = await store.consume("state-1")
    second = await store.consume("state-1")

    assert first == "verifier-1"
    assert second is None


@pytest.mark.asyncio
async def test_concurrent_consume_has_one_winner() -> None:
    store = MemoryPendingAuthStore()
    await store.put("state-1", "verifier-1")

    results = await asyncio.gather(*(store.consume("state-1") for _ in range(5)))

    assert results.count("verifier-1") == 1
    assert results.count(None) == 4


@pytest.mark.asyncio
async def test_consume_missing() -> None:
    store = MemoryPendingAuthStore()

    assert await store.consume("missing") is None


@pytest.mark.asyncio
async def test_consume_expired_entry_removes_it() -> None:
    store = MemoryPendingAuthStore(ttl_seconds=600)
    store.entries["old"] = PendingAuth(code_verifier="verifier", created_at=time.time() - 601)

    assert await store.consume("old") is None
    assert "old" not in store


@pytest.mark.asyncio
async def test_put_overwrites_existing_state() -> None:
    store = MemoryPendingAuthStore()
    await store.put("state-1", "verifier-1")

    await store.put("state-1", "verifier-2")

    assert len(store) == 1
    assert await store.consume("state-1") == "verifier-2"


@pytest.mark.asyncio
async def test_sweep_removes_only_expired() -> None:
    store = MemoryPendingAuthStore(ttl_seconds=600)
    store.entries["old"] = PendingAuth(code_verifier="a", created_at=time.time() - 9999)
    await store.put("fresh", "b")

    removed = await store.sweep_expired()

    assert removed == 1
    assert "old" not in store
    assert "fresh" in store
