from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from todowhats.constants import DESCRIPTION_MAX_LENGTH, TASK_STATUSES, TASK_STATUS_PENDING, TITLE_MAX_LENGTH
from todowhats.domain.common.errors import ValidationError
from todowhats.domain.common.time import parse_iso_or_none, to_iso


def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required.")
    title = title.strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title is too long (max {TITLE_MAX_LENGTH} chars).")
    return title


def validate_description(description: Any) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Description must be a string.")
    description = description.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description is too long (max {DESCRIPTION_MAX_LENGTH} chars).")
    return description or None


def validate_status(status: Any) -> str:
    if status is None or status == "":
        return TASK_STATUS_PENDING
    if status not in TASK_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(TASK_STATUSES)}.")
    return status


def validate_scheduled_at(
    scheduled_at: Any,
    now: Optional[datetime] = None,
    require_future: bool = False,
) -> Optional[str]:
    """
    Normalize an optional reminder time to a UTC ISO string.

    Unlike created_at/updated_at there is no fallback: a malformed value is an error.
    """
    if scheduled_at is None or scheduled_at == "":
        return None
    dt = parse_iso_or_none(scheduled_at)
    if dt is None:
        raise ValidationError("scheduled_at must be an ISO 8601 datetime (e.g. 2024-12-25T15:00:00.000Z).")
    if require_future and now is not None and dt <= now:
        raise ValidationError("scheduled_at must be in the future.")
    return to_iso(dt)


def collect_errors(
    title: Any,
    description: Any,
    status: Any,
    scheduled_at: Any,
    now: Optional[datetime] = None,
    require_future: bool = False,
) -> list[str]:
    """Run every rule and gather the messages instead of stopping at the first one."""
    errors: list[str] = []
    checks = (
        lambda: validate_title(title),
        lambda: validate_description(description),
        lambda: validate_status(status),
        lambda: validate_scheduled_at(scheduled_at, now=now, require_future=require_future),
    )
    for check in checks:
        try:
            check()
        except ValidationError as e:
            errors.append(e.message)
    return errors
