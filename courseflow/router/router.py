"""
Event Router: turns a validated business event into persisted work items.

Behavioral Contract:
- Validation runs first; an invalid event never reaches a handler or trigger
- The fixed handler for the event type (if any) runs before the triggers
- Registered triggers run in registration order
- Every created work item is persisted as soon as it is created
- A failing trigger raises TriggerError and aborts the remaining triggers;
  items created before the failure stay persisted
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Union

from courseflow.errors import TriggerError, ValidationError
from courseflow.events.bus import WORK_ITEMS_CREATED, EventBus
from courseflow.models.event import Event, EventType
from courseflow.models.trigger import TriggerConfig
from courseflow.models.work_item import WorkItem
from courseflow.router.handlers import HANDLERS, Handler
from courseflow.router.templates import render_template
from courseflow.router.validation import validate_event
from courseflow.store.work_items import WorkItemStore

logger = logging.getLogger(__name__)


class EventRouter:
    """
    Dispatches events to the fixed handlers and the registered triggers.
    The trigger registry is owned by the router instance.
    """

    def __init__(
        self,
        store: WorkItemStore,
        bus: Optional[EventBus] = None,
        handlers: Optional[Dict[EventType, Handler]] = None,
    ):
        self.store = store
        self.bus = bus
        self.handlers = dict(HANDLERS if handlers is None else handlers)
        self._triggers: Dict[EventType, List[TriggerConfig]] = defaultdict(list)
        self._lock = threading.Lock()

    # --- Trigger registry ---

    def register_trigger(
        self,
        event_type: Union[EventType, str],
        config: Union[TriggerConfig, Mapping[str, Any]],
    ) -> TriggerConfig:
        """Append a trigger for an event type. Templates are checked at use, not here."""
        etype = EventType(event_type)
        if isinstance(config, TriggerConfig):
            trigger = config.model_copy(update={"event_type": etype})
        else:
            trigger = TriggerConfig.model_validate({**config, "event_type": etype})
        with self._lock:
            self._triggers[etype].append(trigger)
        logger.info("Registered trigger %s for %s", trigger.name, etype.value)
        return trigger

    def triggers(self, event_type: Union[EventType, str, None] = None) -> List[TriggerConfig]:
        with self._lock:
            if event_type is not None:
                return list(self._triggers.get(EventType(event_type), []))
            return [t for configs in self._triggers.values() for t in configs]

    # --- Dispatch ---

    async def dispatch(
        self,
        event_type: Union[EventType, str],
        payload: Optional[Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> List[WorkItem]:
        """Validate, run the fixed handler and then each trigger. Returns the created items."""
        now = now or datetime.utcnow()
        try:
            event = validate_event(event_type, payload, now=now)
        except ValidationError as e:
            logger.warning("Rejected %s event: %s", event_type, "; ".join(e.errors))
            raise

        created: List[WorkItem] = []
        handler = self.handlers.get(event.type)
        if handler is not None:
            created.extend(self.store.add_many(handler(event, now)))

        try:
            for trigger in self.triggers(event.type):
                created.extend(self._execute_trigger(trigger, event, now))
        finally:
            logger.info(
                "Dispatched %s event %s: %d work items", event.type.value, event.id, len(created)
            )
            if created and self.bus is not None:
                await self.bus.publish(
                    WORK_ITEMS_CREATED,
                    {"event_id": event.id, "event_type": event.type.value, "items": created},
                )
        return created

    def _execute_trigger(
        self, trigger: TriggerConfig, event: Event, now: datetime
    ) -> List[WorkItem]:
        context = event.payload.as_context()
        items = []
        try:
            for template in trigger.work_item_templates:
                item = WorkItem(
                    title=render_template(template.title_template, context, trigger.name),
                    description=render_template(
                        template.description_template, context, trigger.name
                    ),
                    type=template.type,
                    priority=template.priority,
                    assignee=template.assignee,
                    due_at=now + timedelta(minutes=template.due_offset_minutes),
                    created_at=now,
                    metadata={
                        **context,
                        "trigger_name": trigger.name,
                        "trigger_id": trigger.id,
                    },
                )
                items.append(self.store.add(item))
        except TriggerError:
            logger.error("Trigger %s failed for event %s", trigger.name, event.id)
            raise
        except Exception as e:
            logger.exception("Trigger %s failed for event %s", trigger.name, event.id)
            raise TriggerError(trigger.name, str(e)) from e

        logger.info("Executed trigger %s: %d work items", trigger.name, len(items))
        return items
