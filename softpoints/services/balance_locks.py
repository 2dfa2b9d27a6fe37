"""
Per-user serialization for balance mutations.

Every ledger write for a user runs while holding that user's lock, from the
dedup lookup through commit. Different users never contend. Across worker
processes the conditional UPDATE in PointsRepository still guards the balance.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


class UserLockRegistry:
    """Lazily created asyncio.Lock per user id, dropped when unused."""

    def __init__(self) -> None:
        self._entries: Dict[int, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def lock(self, user_id: int) -> AsyncIterator[None]:
        entry = self._entries.get(user_id)
        if entry is None:
            entry = self._entries[user_id] = _Entry()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(user_id, None)

    @asynccontextmanager
    async def lock_many(self, user_ids: Iterable[int]) -> AsyncIterator[None]:
        # ascending id order so two transfers in opposite directions cannot deadlock
        ordered = sorted(set(user_ids))
        async with self._acquire(ordered):
            yield

    @asynccontextmanager
    async def _acquire(self, ordered) -> AsyncIterator[None]:
        if not ordered:
            yield
            return
        async with self.lock(ordered[0]):
            async with self._acquire(ordered[1:]):
                yield
