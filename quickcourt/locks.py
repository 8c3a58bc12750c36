import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from typing import Iterable

from redis.exceptions import LockError

from .config import BOOKING_LOCK_TIMEOUT_SECONDS, BOOKING_LOCK_TTL_SECONDS
from .errors import ConflictError
from . import redis_client as redis_module

logger = logging.getLogger(__name__)


def lock_key(facility_id: str, booking_date: date) -> str:
    return f"lock:booking:{facility_id}:{booking_date.isoformat()}"


class BookingLocks:
    """
    Mutual exclusion per (facility, date).

    A process-local asyncio.Lock serializes coroutines in this worker; when
    Redis is configured a Redis lock on the same key serializes workers.
    """

    def __init__(
        self,
        timeout_seconds: float = BOOKING_LOCK_TIMEOUT_SECONDS,
        ttl_seconds: float = BOOKING_LOCK_TTL_SECONDS,
    ):
        self.timeout_seconds = timeout_seconds
        self.ttl_seconds = max(ttl_seconds, timeout_seconds)
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def _local(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1
        return lock

    def _release_ref(self, key: str):
        remaining = self._holders.get(key, 1) - 1
        if remaining <= 0:
            self._holders.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._holders[key] = remaining

    def active_keys(self) -> list[str]:
        return sorted(self._locks)

    @asynccontextmanager
    async def hold(self, facility_id: str, booking_date: date):
        key = lock_key(facility_id, booking_date)
        local = self._local(key)
        try:
            try:
                await asyncio.wait_for(local.acquire(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("Timed out waiting for booking lock %s", key)
                raise ConflictError("Facility is busy for this date, retry shortly")

            try:
                client = redis_module.redis_client
                if client is None:
                    yield
                    return

                dist = client.lock(
                    key,
                    timeout=self.ttl_seconds,
                    blocking_timeout=self.timeout_seconds,
                )
                acquired = await dist.acquire()
                if not acquired:
                    logger.warning("Timed out waiting for distributed booking lock %s", key)
                    raise ConflictError("Facility is busy for this date, retry shortly")
                try:
                    yield
                finally:
                    try:
                        await dist.release()
                    except LockError:
                        logger.warning("Distributed booking lock %s expired before release", key)
            finally:
                local.release()
        finally:
            self._release_ref(key)

    @asynccontextmanager
    async def hold_dates(self, facility_id: str, booking_dates: Iterable[date]):
        """Hold the locks for several dates of one facility, taken in date order."""
        async with AsyncExitStack() as stack:
            for booking_date in sorted(set(booking_dates)):
                await stack.enter_async_context(self.hold(facility_id, booking_date))
            yield


booking_locks = BookingLocks()
