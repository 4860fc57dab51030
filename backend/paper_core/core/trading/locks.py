"""
Paper Trading Core - Keyed Locks

One asyncio.Lock per key (account id, grid id). Work on the same key
serializes; work on different keys never contends.
"""
import asyncio
from typing import Dict


class KeyedLocks:
    """Lazily created mutual-exclusion domains keyed by string id."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
