"""
Per-vault serialization.

The balance read, the allocation computation and the batch submission for
one vault must not interleave with another invocation against the same
vault, or both could spend the same balance snapshot. Invocations for
different vaults stay independent.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class VaultLockRegistry:
    """
    Hands out one asyncio.Lock per vault address.

    A lock taken through hold() is dropped once its last holder or waiter
    leaves, so the registry only keeps vaults that are in use.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        # vault -> holders + waiters inside hold()
        self._users: dict[str, int] = {}

    def lock_for(self, vault_address: str) -> asyncio.Lock:
        key = vault_address.lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, vault_address: str) -> AsyncIterator[None]:
        key = vault_address.lower()
        lock = self.lock_for(key)
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
