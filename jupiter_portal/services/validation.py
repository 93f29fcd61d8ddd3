"""Input coercion shared by the services.

Every helper raises ValidationError naming the offending field, so a
bad value is reported before any write happens.
"""
import math
from datetime import date, datetime
from typing import Optional

from jupiter_portal.exceptions import ValidationError


def parse_date(value, field: str) -> Optional[date]:
    """Accept a date or a YYYY-MM-DD string; empty values become None."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'{field} must be a YYYY-MM-DD date', details={field: value})


def parse_number(value, field: str) -> float:
    """Accept ints, floats and numeric strings; reject booleans, NaN and infinity."""
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', details={field: value})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number', details={field: value})
    if not math.isfinite(number):
        raise ValidationError(f'{field} must be a finite number', details={field: str(value)})
    return number


def parse_hours(value, field: str) -> float:
    """Non-negative hour count; empty values become 0."""
    if value in (None, ''):
        return 0.0
    hours = parse_number(value, field)
    if hours < 0:
        raise ValidationError(f'{field} cannot be negative', details={field: value})
    return hours


def require_text(data: dict, fields: list[str]) -> None:
    """Raise if any of the fields is present, not None, and not a string."""
    bad = [
        f for f in fields
        if data.get(f) is not None and not isinstance(data[f], str)
    ]
    if bad:
        raise ValidationError(
            f'Fields must be text: {bad}',
            details={f: 'must be text' for f in bad},
        )


def require_fields(data: dict, fields: list[str]) -> None:
    """Raise if any of the fields is absent, blank or not a string."""
    require_text(data, fields)
    missing = [
        f for f in fields
        if f not in data or data[f] is None or not data[f].strip()
    ]
    if missing:
        raise ValidationError(
            f'Missing required fields: {missing}',
            details={f: 'required' for f in missing},
        )


def check_date_order(start: Optional[date], end: Optional[date],
                     start_field: str = 'start_date', end_field: str = 'deadline') -> None:
    """Raise if both dates are present and the end precedes the start."""
    if start and end and start > end:
        raise ValidationError(
            f'{end_field} must be on or after {start_field}',
            details={start_field: start.isoformat(), end_field: end.isoformat()},
        )
