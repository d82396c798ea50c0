"""Tests for per-key asyncio locks."""

import asyncio
import pytest
from src.utils.locks import KeyedLock


@pytest.mark.unit
@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    events = []

    async def worker(name):
        async with locks.hold("unit-1"):
            events.append(f"{name}:start")
            await asyncio.sleep(0)
            events.append(f"{name}:end")

    await asyncio.gather(worker("a"), worker("b"))

    assert events == ["a:start", "a:end", "b:start", "b:end"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lock_kept_while_waiters_remain():
    """Test a key stays registered until its last waiter is done."""
    locks = KeyedLock()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("unit-1"):
            await release.wait()

    async def waiter():
        async with locks.hold("unit-1"):
            pass

    tasks = [asyncio.create_task(holder()), asyncio.create_task(waiter())]
    await asyncio.sleep(0)
    assert "unit-1" in locks
    assert len(locks) == 1

    release.set()
    await asyncio.gather(*tasks)

    assert "unit-1" not in locks
    assert len(locks) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lock_dropped_after_error():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold("unit-1"):
            raise RuntimeError("boom")

    assert len(locks) == 0
