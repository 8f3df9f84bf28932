"""
Suspicious Activity Detector.

Runs threshold heuristics over an account's recent audit trail. Findings
reference the log entries that produced them and are kept in a bounded
in-memory buffer for operators.
"""

import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional, Set
from zoneinfo import ZoneInfo

from family_privacy.config import Settings, get_settings
from family_privacy.models.access_log import (
    AccessLog,
    AccessResult,
    LogFilters,
    PrivacyAction,
    Severity,
    SuspiciousActivity,
    SuspiciousActivityType,
)
from family_privacy.repositories.access_log_repository import AccessLogRepository
from family_privacy.utils.dates import Clock, ensure_utc, utc_now
from family_privacy.utils.logging import get_logger
from family_privacy.utils.monitoring import record_suspicious_finding

logger = get_logger(__name__)


class SuspiciousActivityDetector:
    """Detects failed-attempt bursts, off-hours use, bulk export and shared addresses."""

    def __init__(
        self,
        logs: AccessLogRepository,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ):
        """Initialize the detector.

        Args:
            logs: Access log repository
            settings: Thresholds, window and timezone
            clock: Time source for the detection window
        """
        self.logs = logs
        self.settings = settings or get_settings()
        self._clock = clock
        self._timezone = ZoneInfo(self.settings.audit_timezone)

        self._findings: Deque[SuspiciousActivity] = deque(
            maxlen=self.settings.suspicious_buffer_size
        )
        self._findings_lock = threading.Lock()

    def detect_suspicious_activity(
        self,
        owner_id: str,
        window_days: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[SuspiciousActivity]:
        """
        Analyze an account's recent audit trail.

        Looks back ``window_days`` from now unless ``start_date`` is given.

        Args:
            owner_id: Account to analyze
            window_days: Look-back window, configured default when None
            start_date: Start of an explicit range, replacing the window
            end_date: End of the range, open when None

        Returns:
            Findings, at most one per heuristic
        """
        now = self._clock()
        if start_date is not None:
            since = ensure_utc(start_date)
        else:
            if window_days is None:
                window_days = self.settings.suspicious_window_days
            since = now - timedelta(days=window_days)
        until = ensure_utc(end_date) if end_date is not None else None
        entries = self.logs.query(owner_id, LogFilters(start_date=since, end_date=until))

        findings: List[SuspiciousActivity] = []
        for check in (
            self._failed_attempts,
            self._off_hours_access,
            self._bulk_data_access,
        ):
            finding = check(owner_id, entries)
            if finding is not None:
                findings.append(finding)

        finding = self._unusual_access_pattern(owner_id, entries, since, until)
        if finding is not None:
            findings.append(finding)

        for finding in findings:
            finding.timestamp = now
            record_suspicious_finding(finding.type.value, finding.severity.value)
            logger.warning(
                "suspicious_activity_detected",
                owner_id=owner_id,
                type=finding.type.value,
                severity=finding.severity.value,
                related_logs=len(finding.related_logs),
            )

        if findings:
            with self._findings_lock:
                self._findings.extend(findings)

        return findings

    def recent_findings(self, owner_id: Optional[str] = None) -> List[SuspiciousActivity]:
        """Get buffered findings, oldest first."""
        with self._findings_lock:
            findings = list(self._findings)
        if owner_id is None:
            return findings
        return [f for f in findings if f.owner_id == owner_id]

    def _failed_attempts(
        self, owner_id: str, entries: List[AccessLog]
    ) -> Optional[SuspiciousActivity]:
        denied = [e for e in entries if e.result == AccessResult.DENIED]
        if len(denied) < self.settings.failed_attempts_threshold:
            return None

        if len(denied) > self.settings.failed_attempts_high_threshold:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM
        return SuspiciousActivity(
            type=SuspiciousActivityType.MULTIPLE_FAILED_ATTEMPTS,
            description=f"{len(denied)} failed access attempts detected",
            severity=severity,
            owner_id=owner_id,
            related_logs=[e.id for e in denied],
        )

    def _is_off_hours(self, entry: AccessLog) -> bool:
        hour = ensure_utc(entry.timestamp).astimezone(self._timezone).hour
        return hour < self.settings.off_hours_start or hour > self.settings.off_hours_end

    def _off_hours_access(
        self, owner_id: str, entries: List[AccessLog]
    ) -> Optional[SuspiciousActivity]:
        off_hours = [e for e in entries if self._is_off_hours(e)]
        if len(off_hours) <= self.settings.off_hours_threshold:
            return None
        return SuspiciousActivity(
            type=SuspiciousActivityType.OFF_HOURS_ACCESS,
            description=f"{len(off_hours)} accesses during off-hours",
            severity=Severity.MEDIUM,
            owner_id=owner_id,
            related_logs=[e.id for e in off_hours],
        )

    def _bulk_data_access(
        self, owner_id: str, entries: List[AccessLog]
    ) -> Optional[SuspiciousActivity]:
        exports = [e for e in entries if e.action == PrivacyAction.EXPORT_DATA]
        if len(exports) <= self.settings.bulk_export_threshold:
            return None
        return SuspiciousActivity(
            type=SuspiciousActivityType.BULK_DATA_ACCESS,
            description=f"{len(exports)} data exports in a short period",
            severity=Severity.HIGH,
            owner_id=owner_id,
            related_logs=[e.id for e in exports],
        )

    def _unusual_access_pattern(
        self,
        owner_id: str,
        entries: List[AccessLog],
        since: datetime,
        until: Optional[datetime],
    ) -> Optional[SuspiciousActivity]:
        addresses = {e.ip_address for e in entries if e.ip_address}
        if not addresses:
            return None

        accounts: Dict[str, Set[str]] = defaultdict(set)
        related: Dict[str, List[str]] = defaultdict(list)
        for entry in self.logs.query_by_addresses(addresses, since, until):
            accounts[entry.ip_address].add(entry.owner_id)
            related[entry.ip_address].append(entry.id)

        shared = sorted(
            address
            for address, owners in accounts.items()
            if len(owners) > self.settings.shared_address_threshold
        )
        if not shared:
            return None

        return SuspiciousActivity(
            type=SuspiciousActivityType.UNUSUAL_ACCESS_PATTERN,
            description=(
                f"Address {', '.join(shared)} used across "
                f"{max(len(accounts[a]) for a in shared)} accounts"
            ),
            severity=Severity.HIGH,
            owner_id=owner_id,
            related_logs=sorted({log_id for a in shared for log_id in related[a]}),
        )
