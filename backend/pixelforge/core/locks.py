# pixelforge/core/locks.py
"""
Per-key mutual exclusion for asyncio code.

Operations on the same username run one at a time; operations on different
usernames proceed in parallel.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLock:
    """
    A lazily populated map of asyncio.Lock objects.

    Data structure:
    - _locks: Dict[key, asyncio.Lock]
    - _waiters: Dict[key, int] (holders + waiters, so idle locks can be dropped)
    """
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Nobody else references this lock any more
                del self._waiters[key]
                del self._locks[key]

    def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())
