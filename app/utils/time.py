"""Time utilities."""
from datetime import UTC, datetime

# Daraja wants a compact, numeric-only local timestamp, e.g. 20240131235959.
DARAJA_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def daraja_timestamp(moment: datetime | None = None) -> str:
    """Format ``moment`` (default: now) the way the STK password expects it."""

    return (moment or datetime.now()).strftime(DARAJA_TIMESTAMP_FORMAT)


__all__ = ["DARAJA_TIMESTAMP_FORMAT", "utcnow", "daraja_timestamp"]
