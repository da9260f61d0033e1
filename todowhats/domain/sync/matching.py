"""
Identity matching between unlinked local tasks and remote tasks.

Bridges the window where one task exists on both sides without a server_id
link yet: just pushed, or created remotely (WhatsApp) and not yet pulled.
Two distinct tasks with the same title created within the window WILL be
merged; that is the accepted cost of having no shared key.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Optional

from todowhats.constants import MATCH_WINDOW_SECONDS
from todowhats.domain.common.time import parse_iso_or_none
from todowhats.domain.tasks.models import RemoteTask, Task

logger = logging.getLogger(__name__)

MATCH_WINDOW = timedelta(seconds=MATCH_WINDOW_SECONDS)


def titles_match(local_title: str, remote_title: str) -> bool:
    """Exact, case-sensitive comparison after trimming outer whitespace."""
    return (local_title or "").strip() == (remote_title or "").strip()


def created_within(local_created_at: str, remote_created_at: str, window: timedelta = MATCH_WINDOW) -> bool:
    local_dt = parse_iso_or_none(local_created_at)
    remote_dt = parse_iso_or_none(remote_created_at)
    if local_dt is None or remote_dt is None:
        return False
    return abs(local_dt - remote_dt) < window


def same_instant(a: str, b: str) -> bool:
    """Both parse and denote the same moment, whatever their offsets."""
    a_dt = parse_iso_or_none(a)
    b_dt = parse_iso_or_none(b)
    return a_dt is not None and a_dt == b_dt


def is_identity_match(local: Task, remote: RemoteTask, window: timedelta = MATCH_WINDOW) -> bool:
    return (
        local.server_id is None
        and titles_match(local.title, remote.title)
        and created_within(local.created_at, remote.created_at, window)
    )


def _created_sort_key(task: Task):
    return (parse_iso_or_none(task.created_at), task.local_id)


def find_identity_match(
    remote: RemoteTask,
    candidates: Iterable[Task],
    window: timedelta = MATCH_WINDOW,
) -> Optional[Task]:
    """Earliest-created unlinked candidate matching remote, or None."""
    matches = [c for c in candidates if is_identity_match(c, remote, window)]
    if not matches:
        return None
    matches.sort(key=_created_sort_key)
    if len(matches) > 1:
        logger.warning(
            "Ambiguous identity match for remote %s (%r): %d local candidates, linking earliest %s",
            remote.server_id,
            remote.title,
            len(matches),
            matches[0].local_id,
        )
    return matches[0]
