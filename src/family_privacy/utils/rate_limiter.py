"""Fixed-window rate limiter for privacy operations."""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from family_privacy.utils.locks import KeyedLocks
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)

RateKey = Tuple[str, str]


@dataclass
class _Window:
    """Counter for one fixed window."""

    started_at: float
    count: int = 0


class FixedWindowRateLimiter:
    """Rate limiter keyed by (account, action class).

    Each key gets a window of ``window_seconds`` starting at its first request;
    once ``limit`` requests are counted in the window further requests are
    rejected until the window rolls over. Requests are never delayed. Windows
    that have rolled over are dropped at most once per window length.
    """

    def __init__(
        self,
        limits: Dict[str, int],
        window_seconds: int = 3600,
        default_limit: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            limits: Max requests per window for each action class
            window_seconds: Window length in seconds
            default_limit: Limit for action classes missing from ``limits``;
                unlimited when None
            clock: Monotonic time source
        """
        self.limits = dict(limits)
        self.window_seconds = window_seconds
        self.default_limit = default_limit
        self._clock = clock

        self._windows: Dict[RateKey, _Window] = {}
        self._windows_lock = threading.Lock()
        self._last_purge = clock()

        self._key_locks = KeyedLocks()

    def __len__(self) -> int:
        """Number of keys with a window."""
        with self._windows_lock:
            return len(self._windows)

    def limit_for(self, action_class: str) -> Optional[int]:
        """Get the configured limit for an action class."""
        return self.limits.get(action_class, self.default_limit)

    def allow(self, account_id: str, action_class: str) -> bool:
        """Count a request and report whether it is within the limit.

        Args:
            account_id: Account the request acts on
            action_class: Rate limit class of the action

        Returns:
            True if the request is allowed, False otherwise
        """
        limit = self.limit_for(action_class)
        if limit is None:
            return True

        self._purge_if_due()
        key = (account_id, action_class)
        with self._key_locks.hold(key):
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now)
                with self._windows_lock:
                    self._windows[key] = window

            if window.count >= limit:
                logger.warning(
                    "rate_limit_exceeded",
                    account_id=account_id,
                    action_class=action_class,
                    limit=limit,
                )
                return False

            window.count += 1
            return True

    def remaining(self, account_id: str, action_class: str) -> Optional[int]:
        """Get remaining requests in the current window."""
        limit = self.limit_for(action_class)
        if limit is None:
            return None

        key = (account_id, action_class)
        with self._key_locks.hold(key):
            window = self._windows.get(key)
            if window is None or self._clock() - window.started_at >= self.window_seconds:
                return limit
            return max(limit - window.count, 0)

    def reset(self, account_id: str, action_class: str) -> None:
        """Reset the window for a key."""
        key = (account_id, action_class)
        with self._key_locks.hold(key):
            with self._windows_lock:
                self._windows.pop(key, None)

    def purge_expired(self) -> int:
        """Drop windows that have rolled over.

        Returns:
            Number of windows dropped
        """
        now = self._clock()
        with self._windows_lock:
            expired = [
                key
                for key, window in self._windows.items()
                if now - window.started_at >= self.window_seconds
            ]
            for key in expired:
                del self._windows[key]
            self._last_purge = now
        if expired:
            logger.debug("rate_limit_windows_purged", count=len(expired))
        return len(expired)

    def _purge_if_due(self) -> None:
        if self._clock() - self._last_purge >= self.window_seconds:
            self.purge_expired()
