"""Task entity and decoding of raw store documents."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Status of a task; drives column placement."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def normalize(cls, raw: Any) -> TaskStatus:
        """Map a raw stored value to a status; anything unknown becomes TODO."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except (TypeError, ValueError):
            return cls.TODO


@dataclass(frozen=True)
class Task:
    """A study task as seen by a client."""

    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    assigned_to: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> Task:
        """Decode a store document, normalizing the status field."""
        created_at = data.get("createdAt")
        assigned_to = data.get("assignedTo")
        created_by = data.get("createdBy")
        return cls(
            id=doc_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=TaskStatus.normalize(data.get("status")),
            assigned_to=str(assigned_to) if assigned_to else None,
            created_by=str(created_by) if created_by else None,
            created_at=created_at if isinstance(created_at, datetime) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert task to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "assignedTo": self.assigned_to,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


def new_task_fields(
    title: str, description: str, created_by: str, created_at: Any
) -> dict[str, Any]:
    """Document fields for a freshly added task: always todo and unassigned."""
    return {
        "title": title,
        "description": description,
        "status": TaskStatus.TODO.value,
        "createdAt": created_at,
        "assignedTo": None,
        "createdBy": created_by,
    }
