"""
Keyed asyncio locks serialising read-modify-write cycles per group.

A product's key is "group:<group_id>" when it belongs to a group, otherwise
"sku:<sku>". Holding several keys acquires them in sorted order so two
holders can never deadlock. Locks are not re-entrant: entry points take the
lock once and the helpers they call must not take it again.

A key's lock lives only while some task holds or waits for it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


def group_key(group_id: str) -> str:
    return f"group:{group_id}"


def sku_key(sku: str) -> str:
    return f"sku:{sku}"


class GroupLockRegistry:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}  # key -> tasks holding or waiting

    def __len__(self) -> int:
        return len(self._locks)

    def _claim(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _unclaim(self, key: str) -> None:
        remaining = self._users.get(key, 0) - 1
        if remaining > 0:
            self._users[key] = remaining
            return
        self._users.pop(key, None)
        self._locks.pop(key, None)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def users(self, key: str) -> int:
        """Number of tasks currently holding or waiting for a key"""
        return self._users.get(key, 0)

    @asynccontextmanager
    async def hold(self, *keys: Optional[str]):
        """Hold every given key (None entries ignored) for the duration of the block"""
        if not self.enabled:
            yield
            return

        ordered: List[str] = sorted({k for k in keys if k})
        claimed: List[str] = []
        acquired: List[asyncio.Lock] = []
        try:
            for key in ordered:
                lock = self._claim(key)
                claimed.append(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in claimed:
                self._unclaim(key)
