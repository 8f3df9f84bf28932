"""Date helpers shared by the lifecycle and audit components."""

from datetime import datetime, timezone
from typing import Annotated, Callable

from dateutil.relativedelta import relativedelta
from pydantic import AfterValidator

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Model field type: stored datetimes are always aware UTC
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


def months_before(reference: datetime, months: int) -> datetime:
    """Get the calendar date ``months`` months before ``reference``."""
    return reference - relativedelta(months=months)
