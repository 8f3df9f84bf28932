"""Tests for audit report generation."""

import json
from datetime import timedelta

import pytest

from family_privacy.audit import AuditReportGenerator
from family_privacy.core.exceptions import PrivacyGovernanceError, ValidationError
from family_privacy.models.access_log import (
    AccessResult,
    LogFilters,
    PrivacyAction,
    ReportFormat,
    SuspiciousActivityType,
)


@pytest.fixture
def trail(governance, owner_id, clock):
    """Write a small mixed audit trail."""
    audit = governance.audit
    audit.log_action(owner_id, PrivacyAction.VIEW_DATA, resource_type="symptoms")
    audit.log_action(
        owner_id, PrivacyAction.VIEW_DATA, actor_id="caregiver-001", resource_type="vitals"
    )
    audit.log_action(
        owner_id,
        PrivacyAction.VIEW_DATA,
        actor_id="stranger",
        resource_type="vitals",
        result=AccessResult.DENIED,
    )
    audit.log_action(
        owner_id, PrivacyAction.EDIT_DATA, actor_id="caregiver-001", resource_type="symptoms"
    )
    clock.advance(minutes=5)
    return audit


def _deny_eleven_times(governance, owner_id, clock):
    for _ in range(11):
        governance.audit.log_action(
            owner_id, PrivacyAction.VIEW_DATA, actor_id="stranger", result=AccessResult.DENIED
        )
        clock.advance(minutes=1)


class TestAuditReport:
    """Report content."""

    @pytest.mark.audit_required
    def test_summary(self, governance, owner_id, trail, clock):
        """Test totals, unique actors and the most accessed resource."""
        report = governance.reports.generate_audit_report(
            owner_id, clock() - timedelta(days=1), clock()
        )

        summary = report.summary
        assert summary.total_entries == 4
        assert summary.successful_access == 3
        assert summary.denied_access == 1
        assert summary.unique_accessors == 3
        # symptoms and vitals tie, the alphabetically first wins
        assert summary.most_accessed_resource == "symptoms"
        assert summary.suspicious_activity == []
        assert report.generated_by == owner_id
        assert report.metadata == {"entry_limit": 1000, "truncated": False}

    @pytest.mark.audit_required
    def test_report_generation_is_audited(self, governance, owner_id, trail, clock):
        """Test generating a report leaves an export entry."""
        report = governance.reports.generate_audit_report(
            owner_id, clock() - timedelta(days=1), clock(), requested_by=owner_id
        )

        exports = governance.audit.get_access_logs(
            owner_id, LogFilters(resource_type="audit_report")
        )
        assert len(exports) == 1
        assert exports[0].action == PrivacyAction.EXPORT_DATA
        assert exports[0].resource_id == report.id

    def test_filters_apply_inside_range(self, governance, owner_id, trail, clock):
        """Test extra filters narrow the slice."""
        report = governance.reports.generate_audit_report(
            owner_id,
            clock() - timedelta(days=1),
            clock(),
            filters=LogFilters(actor_id="caregiver-001"),
        )

        assert report.summary.total_entries == 2
        assert {entry.actor_id for entry in report.entries} == {"caregiver-001"}
        assert report.filters.start_date == clock() - timedelta(days=1)

    def test_empty_range(self, governance, owner_id, trail, clock):
        """Test a range without entries gives an empty summary."""
        report = governance.reports.generate_audit_report(
            owner_id, clock() + timedelta(days=1), clock() + timedelta(days=2)
        )

        assert report.entries == []
        assert report.summary.total_entries == 0
        assert report.summary.most_accessed_resource == "none"

    def test_reversed_range_rejected(self, governance, owner_id, clock):
        """Test the end must not precede the start."""
        with pytest.raises(ValidationError):
            governance.reports.generate_audit_report(
                owner_id, clock(), clock() - timedelta(days=1)
            )


class TestRendering:
    """Rendering through the export renderer."""

    def test_render_json(self, governance, owner_id, trail, clock):
        """Test the renderer receives the full report."""
        report = governance.reports.generate_audit_report(
            owner_id, clock() - timedelta(days=1), clock(), report_format=ReportFormat.JSON
        )

        rendered = json.loads(governance.reports.render(report))

        assert rendered["id"] == report.id
        assert rendered["format"] == "json"
        assert len(rendered["entries"]) == 4

    def test_render_without_renderer(self, governance, owner_id, clock):
        """Test a missing renderer is reported."""
        generator = AuditReportGenerator(governance.audit, governance.detector, clock=clock)
        report = generator.generate_audit_report(owner_id, clock() - timedelta(days=1), clock())

        with pytest.raises(PrivacyGovernanceError) as exc_info:
            generator.render(report)

        assert exc_info.value.code == "RENDERER_UNAVAILABLE"


class TestReportFindings:
    """Suspicious findings follow the report range."""

    @pytest.mark.audit_required
    def test_old_range_is_analyzed(self, governance, owner_id, clock):
        """Test denials inside an old report range are flagged."""
        start = clock()
        _deny_eleven_times(governance, owner_id, clock)
        end = clock()
        clock.advance(days=30)

        report = governance.reports.generate_audit_report(owner_id, start, end)

        assert [f.type for f in report.summary.suspicious_activity] == [
            SuspiciousActivityType.MULTIPLE_FAILED_ATTEMPTS
        ]

    def test_activity_outside_range_is_not_reported(self, governance, owner_id, clock):
        """Test recent denials do not show up in a report on an earlier range."""
        _deny_eleven_times(governance, owner_id, clock)

        report = governance.reports.generate_audit_report(
            owner_id, clock() - timedelta(days=20), clock() - timedelta(days=10)
        )

        assert report.summary.suspicious_activity == []
