"""Monitoring and observability utilities."""

from typing import Any, Optional

from prometheus_client import REGISTRY, Counter

from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)


def _get_collector(name: str) -> Optional[Any]:
    """Get collector from registry by name."""
    # Access internal registry structure - pylint: disable=protected-access
    return REGISTRY._names_to_collectors.get(name)


# Prometheus metrics
try:
    authorization_decisions = Counter(
        "privacy_authorization_decisions_total",
        "Total number of authorization decisions",
        ["outcome"],
    )

    audit_failures = Counter(
        "privacy_audit_failures_total",
        "Total number of audit log writes that failed",
    )

    deletion_requests = Counter(
        "privacy_deletion_requests_total",
        "Deletion request status transitions",
        ["status"],
    )

    suspicious_findings = Counter(
        "privacy_suspicious_findings_total",
        "Suspicious activity findings raised",
        ["type", "severity"],
    )

    consent_propagation = Counter(
        "privacy_consent_propagation_total",
        "Consent propagation deliveries by sink and outcome",
        ["sink", "outcome"],
    )
except ValueError:
    # Metrics already registered, retrieve them from the registry
    authorization_decisions = _get_collector("privacy_authorization_decisions")  # type: ignore[assignment]
    audit_failures = _get_collector("privacy_audit_failures")  # type: ignore[assignment]
    deletion_requests = _get_collector("privacy_deletion_requests")  # type: ignore[assignment]
    suspicious_findings = _get_collector("privacy_suspicious_findings")  # type: ignore[assignment]
    consent_propagation = _get_collector("privacy_consent_propagation")  # type: ignore[assignment]


def record_decision(allowed: bool, error: bool = False) -> None:
    """Count an authorization decision."""
    outcome = "error" if error else ("allowed" if allowed else "denied")
    authorization_decisions.labels(outcome=outcome).inc()


def record_audit_failure() -> None:
    """Count a failed audit write."""
    audit_failures.inc()


def record_deletion_status(status: str) -> None:
    """Count a deletion request entering a status."""
    deletion_requests.labels(status=status).inc()


def record_suspicious_finding(finding_type: str, severity: str) -> None:
    """Count a suspicious activity finding."""
    suspicious_findings.labels(type=finding_type, severity=severity).inc()


def record_propagation(sink: str, outcome: str) -> None:
    """Count a consent propagation attempt outcome (delivered, retried, failed)."""
    consent_propagation.labels(sink=sink, outcome=outcome).inc()
