"""Per-path asyncio locks for serialising tool calls on the same note."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
import logging
from typing import AsyncIterator, Dict, Iterable, List

from .file_store import NOTE_SUFFIX, normalize_path

logger = logging.getLogger(__name__)


def lock_key(path: str) -> str:
    """Key under which ``path`` is locked; ``note`` and ``note.md`` share one."""
    normalized = normalize_path(path)
    if normalized.endswith(NOTE_SUFFIX):
        normalized = normalized[: -len(NOTE_SUFFIX)]
    return normalized.lower()


class PathLockManager:
    """Hands out one ``asyncio.Lock`` per vault path.

    Locks for several paths are always taken in sorted key order so two
    calls touching the same pair of paths cannot deadlock. A lock is
    forgotten once no holder or waiter references its path.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: str) -> asyncio.Lock:
        self._users[key] = self._users.get(key, 0) + 1
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, paths: Iterable[str]) -> AsyncIterator[None]:
        keys: List[str] = sorted({key for key in map(lock_key, paths) if key})
        locks = [self._checkout(key) for key in keys]
        try:
            async with AsyncExitStack() as stack:
                for key, lock in zip(keys, locks):
                    if lock.locked():
                        logger.debug("Waiting for path lock", extra={"path": key})
                    await stack.enter_async_context(lock)
                yield
        finally:
            for key in keys:
                self._checkin(key)

    def is_locked(self, path: str) -> bool:
        lock = self._locks.get(lock_key(path))
        return bool(lock and lock.locked())


__all__ = ["PathLockManager", "lock_key"]
