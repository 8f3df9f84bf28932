"""Audit trail, suspicious activity detection and audit reports."""

from family_privacy.audit.audit_reports import AuditReportGenerator
from family_privacy.audit.audit_service import PrivacyAuditService
from family_privacy.audit.failure_channel import AuditFailureChannel
from family_privacy.audit.suspicious_activity import SuspiciousActivityDetector

__all__ = [
    "AuditFailureChannel",
    "AuditReportGenerator",
    "PrivacyAuditService",
    "SuspiciousActivityDetector",
]
