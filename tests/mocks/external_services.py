"""Mock implementations of the external collaborators.

Only collaborators outside the governance core are mocked; every governance
component under test is the real implementation.
"""

import json
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from family_privacy.core.exceptions import AuthorizationDenied
from family_privacy.interfaces import (
    ExportRenderer,
    IdentityProvider,
    NotificationSink,
    VerifiedIdentity,
)
from family_privacy.models.access_log import AuditReport


class FakeClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, now: Optional[datetime] = None):
        """Initialize the clock, by default on a weekday afternoon."""
        self.now = now or datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by a ``timedelta``."""
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        """Jump to a point in time."""
        self.now = now


class RecordingSink(NotificationSink):
    """Sink that records delivered messages, optionally failing first."""

    def __init__(self, name: str = "recording", failures: int = 0):
        """Initialize the sink.

        Args:
            name: Sink name used in logs
            failures: Number of calls that raise before deliveries succeed
        """
        self.name = name
        self.failures = failures
        self.calls = 0
        self.messages: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def send(self, message_type: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.calls += 1
            if self.calls <= self.failures:
                raise ConnectionError(f"{self.name} unavailable")
            self.messages.append((message_type, payload))


class StaticIdentityProvider(IdentityProvider):
    """Identity provider backed by a token table."""

    def __init__(self, identities: Dict[str, VerifiedIdentity]):
        """Initialize with token to identity mappings."""
        self.identities = identities

    def verify(self, token: str) -> VerifiedIdentity:
        if token not in self.identities:
            raise AuthorizationDenied("Invalid token")
        return self.identities[token]


class JsonExportRenderer(ExportRenderer):
    """Renders audit reports as JSON bytes."""

    def render(self, report: AuditReport) -> bytes:
        return json.dumps(report.model_dump(mode="json"), sort_keys=True).encode("utf-8")
