from __future__ import annotations

import uuid

from todowhats.domain.tasks.ports import IdGenerator


class UuidGenerator(IdGenerator):
    """Local task ids: task_<uuid4 hex>, unique without coordinating with the server."""

    def new_id(self) -> str:
        return f"task_{uuid.uuid4().hex}"
