"""
Per-key asyncio locking.

Serializes work on a single subscription while letting different
subscriptions proceed in parallel.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Hashable

logger = logging.getLogger(__name__)


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class KeyedLock:
    """
    Registry of asyncio locks indexed by key.

    Entries are dropped once no task holds or waits on them, so the
    registry does not grow with every subscription ever touched.
    """

    def __init__(self):
        self._entries: Dict[Hashable, _LockEntry] = {}

    @asynccontextmanager
    async def acquire(self, key: Hashable):
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def is_locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.lock.locked())

    def __len__(self) -> int:
        return len(self._entries)
