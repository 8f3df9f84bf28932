"""Per-key locks for serializing work on one account or request."""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class _Entry:
    """A key's lock and the number of callers holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """Hands out one lock per key.

    A key's lock lives only while some caller holds or waits on it, so the
    registry stays as small as the set of keys in use. The registry lock only
    guards entry bookkeeping.
    """

    def __init__(self) -> None:
        """Initialize the lock registry."""
        self._entries: Dict[Hashable, _Entry] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable, blocking: bool = True) -> Iterator[bool]:
        """Hold the lock for a key for the duration of the block.

        Args:
            key: Account, grant or request id
            blocking: Wait for the lock; when False the block runs at once
                and receives False if another caller holds it

        Yields:
            Whether the lock was acquired
        """
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1

        acquired = entry.lock.acquire(blocking=blocking)
        try:
            yield acquired
        finally:
            if acquired:
                entry.lock.release()
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._registry_lock:
            return len(self._entries)
