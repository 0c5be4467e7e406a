"""
Work Item Store: persistence collaborator for tasks.

Written by: Event Router handlers and triggers, Workflow Engine planning
Updated by: status transition pending -> completed only
In-memory for the prototype; production would sit on a relational store.
"""

import threading
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from courseflow.errors import WorkItemNotFoundError
from courseflow.models.work_item import Priority, WorkItem, WorkItemStatus


class WorkItemStore:
    """Append-only from the caller's perspective."""

    def __init__(self):
        self._items: Dict[str, WorkItem] = {}
        self._lock = threading.Lock()

    def add(self, item: WorkItem) -> WorkItem:
        with self._lock:
            self._items[item.id] = item
        return item

    def add_many(self, items: Iterable[WorkItem]) -> List[WorkItem]:
        return [self.add(item) for item in items]

    def get(self, item_id: str) -> Optional[WorkItem]:
        return self._items.get(item_id)

    def list(
        self,
        status: Optional[WorkItemStatus] = None,
        type: Optional[str] = None,
        assignee: Optional[str] = None,
        priority: Optional[Priority] = None,
    ) -> List[WorkItem]:
        """Items in creation order, optionally filtered."""
        with self._lock:
            items = list(self._items.values())
        return [
            i for i in items
            if (status is None or i.status == status)
            and (type is None or i.type == type)
            and (assignee is None or i.assignee == assignee)
            and (priority is None or i.priority == priority)
        ]

    def find_by_metadata(self, key: str, value: Any) -> List[WorkItem]:
        return [i for i in self.list() if i.metadata.get(key) == value]

    def complete(self, item_id: str, now: Optional[datetime] = None) -> WorkItem:
        """The one permitted mutation: pending -> completed."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise WorkItemNotFoundError(f"Work item {item_id} not found")
            if item.status != WorkItemStatus.COMPLETED:
                item.status = WorkItemStatus.COMPLETED
                item.completed_at = now or datetime.utcnow()
        return item

    def overdue(self, now: Optional[datetime] = None) -> List[WorkItem]:
        now = now or datetime.utcnow()
        return [
            i for i in self.list(status=WorkItemStatus.PENDING) if i.due_at < now
        ]

    def summary(self, now: Optional[datetime] = None) -> dict:
        items = self.list()
        statuses = Counter(i.status.value for i in items)
        return {
            "total_tasks": len(items),
            "completed_tasks": statuses.get(WorkItemStatus.COMPLETED.value, 0),
            "pending_tasks": statuses.get(WorkItemStatus.PENDING.value, 0),
            "overdue_tasks": len(self.overdue(now)),
            "by_type": dict(Counter(i.type for i in items)),
        }

    def count(self) -> int:
        return len(self._items)
