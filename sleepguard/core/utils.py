"""Shared helpers: timestamp policy for incoming samples."""

from datetime import datetime, timezone


class TimePolicyError(ValueError):
    pass


# Used by: api/models.py (BioSampleRequest validator)
def require_utc_aware(dt: datetime, field_name: str) -> datetime:
    """dt must be timezone-aware; returned converted to UTC."""
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise TimePolicyError(
            f"{field_name} must be timezone-aware UTC (ISO 8601, e.g. 2025-01-01T00:00:00Z)"
        )
    return dt.astimezone(timezone.utc)
