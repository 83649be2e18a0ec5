"""
auth/locks.py -- In-process mutual exclusion keyed by an arbitrary hashable.

Used for per-email user mutations and per-(email, purpose) code operations.
Locks are re-entrant. Each entry counts its holders and waiters and is
dropped when the count reaches zero, so the table does not grow with the
number of distinct keys seen.

This only serializes threads of one process. Cross-process safety comes from
the database constraints in auth/store.py.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLock:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
