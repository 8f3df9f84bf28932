"""Export renderer interface."""

from abc import ABC, abstractmethod

from family_privacy.models.access_log import AuditReport


class ExportRenderer(ABC):
    """Turns an audit report into a downloadable artifact."""

    @abstractmethod
    def render(self, report: AuditReport) -> bytes:
        """Render a report in ``report.format``."""
