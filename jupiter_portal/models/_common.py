"""Helpers shared by the model modules."""
from datetime import datetime, timezone


def utcnow():
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def iso(value):
    """Serialize a date/datetime for to_dict(), passing None through."""
    return value.isoformat() if value else None
