"""
OccupancyLockRegistry -- in-process mutual exclusion per occupancy space.

Serialises coordinator operations on the same (property, unit) inside one
process.  Across processes the version check on the occupancy record (and
SELECT ... FOR UPDATE on PostgreSQL) still decides the winner; this lock
only stops local callers from racing into that check.

Entries are reference counted: a key's lock lives only while some caller
holds it or waits for it, so the registry stays as large as the set of
spaces currently in use rather than every space ever touched.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from tenancy_kernel.domain.dtos import OccupancyKey


@dataclass
class _Entry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class OccupancyLockRegistry:
    """Re-entrant lock per OccupancyKey, created on first use and evicted on last release."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[OccupancyKey, _Entry] = {}

    def _checkout(self, key: OccupancyKey) -> threading.RLock:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
            return entry.lock

    def _checkin(self, key: OccupancyKey) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: OccupancyKey) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._checkin(key)

    @contextmanager
    def hold_many(self, keys: Iterable[OccupancyKey]) -> Iterator[None]:
        """Acquire several keys in a fixed order so two callers cannot deadlock."""
        ordered = sorted(set(keys), key=lambda k: (str(k.property_id), str(k.unit_id or "")))
        acquired: list[tuple[OccupancyKey, threading.RLock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


_default_registry = OccupancyLockRegistry()


def default_lock_registry() -> OccupancyLockRegistry:
    """Process-wide registry shared by coordinators that are not given one."""
    return _default_registry
