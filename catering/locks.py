"""
Per-order mutual exclusion.

Mutations of the same order (a cancellation and an incoming additional
order, two concurrent additional orders) run one after the other; different
orders never wait on each other. Locks are dropped once nobody holds or
waits for them.

The registry only covers one process. Writers in other processes are
kept apart by the versioned saves of the order repository.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


class OrderLockRegistry:
    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, order_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(order_id, asyncio.Lock())
        self._users[order_id] = self._users.get(order_id, 0) + 1
        if lock.locked():
            logger.debug(
                "Waiting for order lock",
                extra={"order_id": order_id, "waiters": self._users[order_id]},
            )
        try:
            async with lock:
                yield
        finally:
            self._users[order_id] -= 1
            if self._users[order_id] == 0:
                del self._users[order_id]
                del self._locks[order_id]

    def is_locked(self, order_id: str) -> bool:
        lock = self._locks.get(order_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
