"""
Lock striping for the in-memory registries.

A fixed table of ``asyncio.Lock`` objects; a key is serialized by the stripe
its hash falls into.  Writers for different keys mostly proceed without
contention while writers for the same key always queue behind each other,
and memory stays bounded no matter how many keys pass through.

Whole-table readers do not take the locks: entries are immutable values
replaced under their stripe, so iterating a snapshot of the table never
yields a half-written entry.
"""

from __future__ import annotations

import asyncio
from typing import Hashable


class StripedLock:
    def __init__(self, stripes: int = 64):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks = [asyncio.Lock() for _ in range(stripes)]

    def __len__(self) -> int:
        return len(self._locks)

    def for_key(self, key: Hashable) -> asyncio.Lock:
        return self._locks[hash(key) % len(self._locks)]

