"""
Event Bus: in-process publish/subscribe.

Used by the Workflow Engine and the Service Registry to announce
completion, failure and health events. Listeners may be plain callables or
coroutine functions. A failing listener is logged and never prevents the
remaining listeners from running.
"""

import inspect
import logging
import threading
from collections import defaultdict, deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# Event names published by the core
WORKFLOW_COMPLETED = "workflow_completed"
WORKFLOW_FAILED = "workflow_failed"
BATCH_COMPLETED = "batch_completed"
HEALTH_CHECK_COMPLETED = "health_check_completed"
TASK_COMPLETED = "task_completed"
RELEASE_CREATED = "release_created"
LEARNING_PROGRESS = "learning_progress"
CONTENT_GENERATED = "content_generated"
WORK_ITEMS_CREATED = "work_items_created"


class BusEvent(BaseModel):
    """A published event as kept in the bus history."""

    id: str = Field(default_factory=lambda: f"bus_{uuid4().hex[:12]}")
    name: str
    payload: Any = None
    published_at: datetime = Field(default_factory=datetime.utcnow)
    delivered: int = 0
    failed: int = 0


class EventBus:
    """
    Listener registry plus delivery. Registering or removing a listener is
    the only mutation of shared state and is done under a lock.
    """

    HISTORY_LIMIT = 500

    def __init__(self, history_limit: Optional[int] = None):
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)
        self._lock = threading.Lock()
        self._history: Deque[BusEvent] = deque(
            maxlen=history_limit or self.HISTORY_LIMIT
        )

    def subscribe(self, name: str, callback: Callable) -> None:
        """Register a listener for an event name."""
        with self._lock:
            self._listeners[name].append(callback)

    def unsubscribe(self, name: str, callback: Callable) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        with self._lock:
            listeners = self._listeners.get(name, [])
            if callback in listeners:
                listeners.remove(callback)
                return True
        return False

    def listeners(self, name: str) -> List[Callable]:
        with self._lock:
            return list(self._listeners.get(name, []))

    async def publish(self, name: str, payload: Any = None) -> BusEvent:
        """Deliver an event to every listener, in registration order."""
        event = BusEvent(name=name, payload=payload)

        for callback in self.listeners(name):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
                event.delivered += 1
            except Exception:
                event.failed += 1
                logger.exception("Event listener error for %s", name)

        self._history.append(event)
        return event

    def history(self, name: Optional[str] = None, limit: int = 50) -> List[BusEvent]:
        """Most recent published events, optionally filtered by name."""
        events = [e for e in self._history if name is None or e.name == name]
        return events[-limit:]
