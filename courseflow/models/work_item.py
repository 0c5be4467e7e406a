"""Work items: the units of follow-up work produced by routing and workflows."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WorkItemStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class WorkItem(BaseModel):
    """A persisted task. Only the store moves it from pending to completed."""

    id: str = Field(default_factory=lambda: f"task_{uuid4().hex[:12]}")
    title: str
    description: str
    type: str                               # e.g., "lead_qualification"
    priority: Priority
    assignee: str
    due_at: datetime
    created_at: datetime
    status: WorkItemStatus = WorkItemStatus.PENDING
    completed_at: Optional[datetime] = None
    metadata: dict = {}


class WorkItemDescriptor(BaseModel):
    """A work item before materialization: offsets instead of timestamps."""

    title: str
    description: str
    type: str
    priority: Priority
    assignee: str
    due_offset_minutes: int = Field(ge=0)
    reason: Optional[str] = None
    metadata: dict = {}

    def materialize(self, now: datetime, metadata: Optional[dict] = None) -> WorkItem:
        """Turn the descriptor into a WorkItem due `due_offset_minutes` after `now`."""
        merged = {**self.metadata, **(metadata or {})}
        if self.reason:
            merged.setdefault("assignment_reason", self.reason)
        return WorkItem(
            title=self.title,
            description=self.description,
            type=self.type,
            priority=self.priority,
            assignee=self.assignee,
            due_at=now + timedelta(minutes=self.due_offset_minutes),
            created_at=now,
            metadata=merged,
        )
