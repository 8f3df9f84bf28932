"""
Audit Report Generator.

Composes a filtered slice of an account's audit trail with a summary for
account holders and compliance reviews. Generating a report is itself a
privacy-relevant export and is recorded in the account's audit trail.
"""

from datetime import datetime
from typing import List, Optional

import pandas as pd

from family_privacy.audit.audit_service import PrivacyAuditService
from family_privacy.audit.suspicious_activity import SuspiciousActivityDetector
from family_privacy.core.exceptions import PrivacyGovernanceError, ValidationError
from family_privacy.interfaces.export import ExportRenderer
from family_privacy.models.access_log import (
    AccessLog,
    AccessResult,
    ActorType,
    AuditReport,
    AuditSummary,
    LogFilters,
    PrivacyAction,
    ReportFormat,
)
from family_privacy.utils.dates import Clock, utc_now
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)


class AuditReportGenerator:
    """Generate privacy audit reports."""

    def __init__(
        self,
        audit: PrivacyAuditService,
        detector: SuspiciousActivityDetector,
        renderer: Optional[ExportRenderer] = None,
        clock: Clock = utc_now,
    ):
        """Initialize report generator with its collaborators."""
        self.audit = audit
        self.detector = detector
        self.renderer = renderer
        self._clock = clock

    def generate_audit_report(
        self,
        owner_id: str,
        start_date: datetime,
        end_date: datetime,
        filters: Optional[LogFilters] = None,
        requested_by: Optional[str] = None,
        report_format: ReportFormat = ReportFormat.JSON,
    ) -> AuditReport:
        """
        Generate an audit report for a date range.

        Args:
            owner_id: Account the report covers
            start_date: Start of the range
            end_date: End of the range
            filters: Additional filters; the date range always wins
            requested_by: Identity generating the report
            report_format: Format the report will be rendered to

        Returns:
            The report

        Raises:
            ValidationError: If the range is reversed
        """
        if end_date < start_date:
            raise ValidationError("Report end date precedes start date")

        requested_by = requested_by or owner_id
        filters = (filters or LogFilters()).model_copy(
            update={"start_date": start_date, "end_date": end_date}
        )
        entries = self.audit.get_access_logs(owner_id, filters)

        summary = self.summarize(entries)
        summary.suspicious_activity = self.detector.detect_suspicious_activity(
            owner_id, start_date=start_date, end_date=end_date
        )

        report = AuditReport(
            owner_id=owner_id,
            generated_at=self._clock(),
            generated_by=requested_by,
            start_date=start_date,
            end_date=end_date,
            filters=filters,
            entries=entries,
            summary=summary,
            format=report_format,
            metadata={
                "entry_limit": self.audit.settings.audit_query_limit,
                "truncated": len(entries) >= self.audit.settings.audit_query_limit,
            },
        )

        self.audit.log_action(
            owner_id,
            PrivacyAction.EXPORT_DATA,
            actor_id=requested_by,
            actor_type=ActorType.OWNER if requested_by == owner_id else ActorType.SYSTEM,
            resource_type="audit_report",
            resource_id=report.id,
            details=f"Generated {report_format.value} audit report with {len(entries)} entries",
        )
        logger.info(
            "audit_report_generated",
            report_id=report.id,
            owner_id=owner_id,
            entries=len(entries),
        )
        return report

    def summarize(self, entries: List[AccessLog]) -> AuditSummary:
        """Compute totals, unique actors and the most accessed resource."""
        if not entries:
            return AuditSummary()

        df = pd.DataFrame([entry.model_dump(mode="json") for entry in entries])

        resource_counts = df["resource_type"].value_counts()
        top_count = resource_counts.max()
        most_accessed = sorted(resource_counts[resource_counts == top_count].index)[0]

        return AuditSummary(
            total_entries=len(df),
            successful_access=int((df["result"] == AccessResult.SUCCESS.value).sum()),
            denied_access=int((df["result"] == AccessResult.DENIED.value).sum()),
            unique_accessors=int(df["actor_id"].nunique()),
            most_accessed_resource=str(most_accessed),
        )

    def render(self, report: AuditReport) -> bytes:
        """
        Render a report through the configured export renderer.

        Raises:
            PrivacyGovernanceError: If no renderer is configured
        """
        if self.renderer is None:
            raise PrivacyGovernanceError(
                "No export renderer configured", "RENDERER_UNAVAILABLE"
            )
        return self.renderer.render(report)
