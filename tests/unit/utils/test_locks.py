"""Tests for per-key locks."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from family_privacy.utils.locks import KeyedLocks


class TestKeyedLocks:
    """Lock registry."""

    def test_released_keys_are_dropped(self):
        """Test the registry only keeps keys in use."""
        locks = KeyedLocks()

        for n in range(1000):
            with locks.hold(f"request-{n}"):
                assert len(locks) == 1

        assert len(locks) == 0

    def test_same_key_is_exclusive(self):
        """Test a held key refuses a non-blocking second holder."""
        locks = KeyedLocks()

        with locks.hold("parent-001") as first:
            with locks.hold("parent-001", blocking=False) as second:
                assert first is True
                assert second is False
            with locks.hold("parent-002", blocking=False) as other:
                assert other is True

        assert len(locks) == 0

    def test_waiters_keep_the_lock_alive(self):
        """Test callers waiting on a key share the lock of the current holder."""
        locks = KeyedLocks()
        counter = {"value": 0, "overlap": False}
        inside = threading.Lock()

        def work(_):
            with locks.hold("parent-001"):
                if not inside.acquire(blocking=False):
                    counter["overlap"] = True
                    return
                value = counter["value"]
                counter["value"] = value + 1
                inside.release()

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(work, range(500)))

        assert counter == {"value": 500, "overlap": False}
        assert len(locks) == 0

    def test_lock_released_when_block_raises(self):
        """Test an exception inside the block frees the key."""
        locks = KeyedLocks()

        with pytest.raises(RuntimeError):
            with locks.hold("parent-001"):
                raise RuntimeError("boom")

        with locks.hold("parent-001", blocking=False) as acquired:
            assert acquired is True
        assert len(locks) == 0
