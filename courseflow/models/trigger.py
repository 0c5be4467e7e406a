"""Trigger configuration: dynamic rules expanding one event into work items."""

from typing import List
from uuid import uuid4

from pydantic import BaseModel, Field

from courseflow.models.event import EventType
from courseflow.models.work_item import Priority


class WorkItemTemplate(BaseModel):
    """Templates use `{field_name}` placeholders filled from the event payload."""

    title_template: str
    description_template: str = ""
    type: str
    priority: Priority = Priority.MEDIUM
    assignee: str
    due_offset_minutes: int = Field(default=1440, ge=0)


class TriggerConfig(BaseModel):
    id: str = Field(default_factory=lambda: f"trig_{uuid4().hex[:12]}")
    name: str
    event_type: EventType
    work_item_templates: List[WorkItemTemplate] = []
