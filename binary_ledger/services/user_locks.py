"""
Per-user asyncio locks serializing balance mutations within one process.

Cross-process safety comes from the conditional SQL in WalletCRUD; the
lock only keeps this process from interleaving its own debit and credit
for the same user.
"""

import uuid
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class UserLocks:
    """
    Lock per user id, created on first use and dropped once nobody
    holds or waits for it.
    """

    def __init__(self):
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._users: dict[uuid.UUID, int] = {}

    @asynccontextmanager
    async def lock(self, user_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if not self._users[user_id]:
                del self._users[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)
