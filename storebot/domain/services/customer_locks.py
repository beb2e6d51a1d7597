# storebot/domain/services/customer_locks.py

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class CustomerLocks:
    """One ``asyncio.Lock`` per customer id; serializes that customer's transitions.

    Locks are not re-entrant: code already running under a customer's lock
    must call the ``*_locked`` variants of fulfillment methods.
    """

    def __init__(self) -> None:
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, customer_id: str) -> AsyncIterator[None]:
        async with self._locks[customer_id]:
            yield

    def is_locked(self, customer_id: str) -> bool:
        lock = self._locks.get(customer_id)
        return lock is not None and lock.locked()

    def discard(self, customer_ids: list[str]) -> None:
        """Drop idle locks for customers whose sessions were swept."""
        for customer_id in customer_ids:
            lock = self._locks.get(customer_id)
            if lock is not None and not lock.locked():
                del self._locks[customer_id]
