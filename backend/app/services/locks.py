"""Keyed in-process locks serialising mutations per license pool, asset and tag prefix."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Hashable, Iterable, Iterator


@dataclass
class _Entry:
    lock: Lock
    holders: int = 0


class KeyedLocks:
    """Hands out one exclusive lock per key.

    Entries are reference counted and dropped once no thread holds or waits on
    them, so the registry stays proportional to the keys in flight. Different
    keys never block each other.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._guard = Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry(lock=Lock())
                self._entries[key] = entry
            entry.holders += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        normalized = str(key)
        entry = self._checkout(normalized)
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            self._checkin(normalized, entry)

    @contextmanager
    def hold_many(self, keys: Iterable[Hashable]) -> Iterator[None]:
        """Acquire several keys in sorted order so concurrent callers cannot deadlock."""

        ordered = sorted({str(key) for key in keys if key is not None})
        acquired: list[tuple[str, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                entry.lock.acquire()
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(key, entry)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)


POOL_LOCKS = KeyedLocks("license_pool")
ASSET_LOCKS = KeyedLocks("asset")
TAG_PREFIX_LOCKS = KeyedLocks("asset_tag_prefix")
