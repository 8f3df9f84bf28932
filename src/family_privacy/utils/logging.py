"""Structured logging for the privacy governance engine.

Log events carry identifiers (owner, grant and request ids) but never the
contact details of the people involved; ``mask_contact_details`` masks them
before rendering.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory

from family_privacy.config import Settings, get_settings

AUDIT_FAILURE_LOGGER = "family_privacy.audit.failures"

CONTACT_FIELDS = frozenset({"email", "grantee_email", "provider_email", "ip_address"})


def mask_contact_details(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask email addresses and IP addresses in a log event."""
    for key in CONTACT_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if not value:
            continue
        value = str(value)
        if "@" in value:
            local, _, domain = value.partition("@")
            event_dict[key] = f"{local[:1]}***@{domain}"
        else:
            event_dict[key] = "***"
    return event_dict


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and the standard library root logger."""
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            mask_contact_details,
            structlog.processors.format_exc_info,
            render_processor(settings),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.getLogger(AUDIT_FAILURE_LOGGER).setLevel(logging.WARNING)


def render_processor(settings: Settings) -> Any:
    """JSON in deployed environments, console output otherwise."""
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=False)


def get_logger(name: str) -> BoundLogger:
    """Get a logger bound to a module name."""
    bound_logger: BoundLogger = structlog.get_logger(name)
    return bound_logger
