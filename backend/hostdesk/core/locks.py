"""Per-property serialization for calendar writes.

Overlap checking and the following write must be atomic with respect to other
writers on the same property. Two layers provide that:

- a process-local ``asyncio.Lock`` per property, which serializes coroutines
  inside one process;
- ``pg_advisory_xact_lock`` on PostgreSQL, which serializes transactions across
  processes and is released automatically at commit/rollback.

Other backends (SQLite in tests) only get the process-local layer.
"""

import asyncio
import hashlib
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def get_lock_key(property_id: UUID) -> int:
    """Stable signed 64-bit advisory lock key for a property."""
    digest = hashlib.sha256(f"property:{property_id}".encode()).digest()[:8]
    return int.from_bytes(digest, byteorder="big", signed=True)


class PropertyLockManager:
    """Hands out one asyncio lock per property id.

    Entries are weak: a lock lives while some coroutine holds or awaits it,
    then drops out of the table.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _get(self, property_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(property_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[property_id] = lock
        return lock

    @asynccontextmanager
    async def lock(self, property_id: UUID) -> AsyncIterator[None]:
        """Hold the process-local lock for a property."""
        lock = self._get(property_id)
        async with lock:
            yield

    def is_locked(self, property_id: UUID) -> bool:
        lock = self._locks.get(property_id)
        return lock is not None and lock.locked()

    async def acquire_transaction_lock(self, db: AsyncSession, property_id: UUID) -> None:
        """Take the cross-process lock for the current transaction (PostgreSQL only)."""
        if db.get_bind().dialect.name != "postgresql":
            return
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:lock_key)"),
            {"lock_key": get_lock_key(property_id)},
        )
