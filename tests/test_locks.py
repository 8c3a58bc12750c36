"""
Tests for per-facility, per-date booking locks.
"""

import asyncio
import logging
from datetime import date

import pytest
from redis.exceptions import LockError

from quickcourt import redis_client as redis_module
from quickcourt.errors import ConflictError
from quickcourt.locks import BookingLocks, lock_key

from conftest import BOOKING_DATE


def test_lock_key():
    assert lock_key("fac-1", BOOKING_DATE) == "lock:booking:fac-1:2025-06-02"


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = BookingLocks(timeout_seconds=1)
    order = []

    async def worker(name):
        async with locks.hold("fac-1", BOOKING_DATE):
            order.append(f"{name}:enter")
            await asyncio.sleep(0.01)
            order.append(f"{name}:exit")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (
        ["a:enter", "a:exit", "b:enter", "b:exit"],
        ["b:enter", "b:exit", "a:enter", "a:exit"],
    )
    assert locks.active_keys() == []


@pytest.mark.asyncio
async def test_different_keys_run_together():
    locks = BookingLocks(timeout_seconds=1)
    inside = asyncio.Event()

    async def first():
        async with locks.hold("fac-1", BOOKING_DATE):
            await asyncio.wait_for(inside.wait(), timeout=1)

    async def second():
        async with locks.hold("fac-1", date(2025, 6, 3)):
            inside.set()

    await asyncio.gather(first(), second())


@pytest.mark.asyncio
async def test_timeout_raises_conflict():
    locks = BookingLocks(timeout_seconds=0.05)

    async with locks.hold("fac-1", BOOKING_DATE):
        with pytest.raises(ConflictError):
            async with locks.hold("fac-1", BOOKING_DATE):
                pass

    assert locks.active_keys() == []


@pytest.mark.asyncio
async def test_released_after_error():
    locks = BookingLocks(timeout_seconds=0.05)

    with pytest.raises(RuntimeError):
        async with locks.hold("fac-1", BOOKING_DATE):
            raise RuntimeError("boom")

    async with locks.hold("fac-1", BOOKING_DATE):
        pass
    assert locks.active_keys() == []


@pytest.mark.asyncio
async def test_hold_dates_takes_each_date_once_in_order():
    locks = BookingLocks(timeout_seconds=1)
    later, earlier = date(2025, 6, 9), BOOKING_DATE

    async with locks.hold_dates("fac-1", [later, earlier, later]):
        assert locks.active_keys() == [lock_key("fac-1", earlier), lock_key("fac-1", later)]

    assert locks.active_keys() == []


@pytest.mark.asyncio
async def test_hold_dates_waits_for_any_held_date():
    locks = BookingLocks(timeout_seconds=0.05)

    async with locks.hold("fac-1", BOOKING_DATE):
        with pytest.raises(ConflictError):
            async with locks.hold_dates("fac-1", [date(2025, 6, 9), BOOKING_DATE]):
                pass

    assert locks.active_keys() == []


class FakeRedisLock:
    def __init__(self, server, key, timeout, blocking_timeout):
        self.server = server
        self.key = key
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    async def acquire(self):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.blocking_timeout
        while self.key in self.server.held:
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.005)
        self.server.held.add(self.key)
        return True

    async def release(self):
        if self.key not in self.server.held:
            raise LockError("Cannot release a lock that's no longer owned")
        self.server.held.discard(self.key)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for BookingLocks: lock keys shared by every worker."""

    def __init__(self):
        self.held = set()
        self.created = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        lock = FakeRedisLock(self, name, timeout, blocking_timeout)
        self.created.append(lock)
        return lock


@pytest.fixture
def fake_redis(monkeypatch):
    server = FakeRedis()
    monkeypatch.setattr(redis_module, "redis_client", server)
    return server


class TestDistributedLock:
    @pytest.mark.asyncio
    async def test_workers_are_serialized_through_redis(self, fake_redis):
        # separate instances stand in for separate worker processes
        worker_a = BookingLocks(timeout_seconds=1)
        worker_b = BookingLocks(timeout_seconds=1)
        order = []

        async def run(locks, name):
            async with locks.hold("fac-1", BOOKING_DATE):
                order.append(f"{name}:enter")
                await asyncio.sleep(0.02)
                order.append(f"{name}:exit")

        await asyncio.gather(run(worker_a, "a"), run(worker_b, "b"))

        assert order in (
            ["a:enter", "a:exit", "b:enter", "b:exit"],
            ["b:enter", "b:exit", "a:enter", "a:exit"],
        )
        assert fake_redis.held == set()

    @pytest.mark.asyncio
    async def test_lock_uses_configured_ttl_and_wait(self, fake_redis):
        locks = BookingLocks(timeout_seconds=2, ttl_seconds=45)

        async with locks.hold("fac-1", BOOKING_DATE):
            assert fake_redis.held == {lock_key("fac-1", BOOKING_DATE)}

        (created,) = fake_redis.created
        assert created.key == lock_key("fac-1", BOOKING_DATE)
        assert created.timeout == 45
        assert created.blocking_timeout == 2

    def test_ttl_never_shorter_than_wait(self):
        assert BookingLocks(timeout_seconds=10, ttl_seconds=1).ttl_seconds == 10

    @pytest.mark.asyncio
    async def test_key_held_elsewhere_raises_conflict(self, fake_redis):
        fake_redis.held.add(lock_key("fac-1", BOOKING_DATE))
        locks = BookingLocks(timeout_seconds=0.05)

        with pytest.raises(ConflictError):
            async with locks.hold("fac-1", BOOKING_DATE):
                pass

        assert locks.active_keys() == []
        # once the other worker lets go, this worker can take the key again
        fake_redis.held.clear()
        async with locks.hold("fac-1", BOOKING_DATE):
            pass

    @pytest.mark.asyncio
    async def test_released_after_error(self, fake_redis):
        locks = BookingLocks(timeout_seconds=0.05)

        with pytest.raises(RuntimeError):
            async with locks.hold("fac-1", BOOKING_DATE):
                raise RuntimeError("boom")

        assert fake_redis.held == set()
        assert locks.active_keys() == []

    @pytest.mark.asyncio
    async def test_expired_key_on_release_is_logged(self, fake_redis, caplog):
        locks = BookingLocks(timeout_seconds=0.05)

        with caplog.at_level(logging.WARNING, logger="quickcourt.locks"):
            async with locks.hold("fac-1", BOOKING_DATE):
                fake_redis.held.clear()

        assert "expired before release" in caplog.text
        assert locks.active_keys() == []
