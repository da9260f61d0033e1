from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt


def to_iso(dt: datetime) -> str:
    ensure_aware(dt)
    # stored as UTC ISO 8601 with offset
    return dt.astimezone(timezone.utc).isoformat()


def from_iso(s: str) -> datetime:
    """Parse an ISO 8601 string. Naive values are taken as UTC."""
    dt = datetime.fromisoformat(s.strip())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_or_none(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return from_iso(value)
    except ValueError:
        return None


def coerce_timestamp(value: Any, now_iso: str) -> str:
    """
    Normalize a created_at/updated_at value to a non-empty UTC ISO string.

    Missing, empty or unparseable values become now_iso; the column is NOT NULL.
    """
    dt = parse_iso_or_none(value)
    if dt is None:
        return now_iso
    return to_iso(dt)


def is_newer(candidate_iso: str, reference_iso: str) -> bool:
    """True iff candidate is strictly later than reference. Unparseable counts as epoch."""
    epoch = datetime.fromtimestamp(0, timezone.utc)
    candidate = parse_iso_or_none(candidate_iso) or epoch
    reference = parse_iso_or_none(reference_iso) or epoch
    return candidate > reference
