"""courseflow data models."""

from courseflow.models.content import (
    ContentChunk,
    ContentPackage,
    QAReport,
    Release,
    VideoPlan,
)
from courseflow.models.decision import (
    BehaviorPatterns,
    LeadScore,
    PageInteractions,
    RoutingDecision,
    UserBehavior,
)
from courseflow.models.event import Event, EventPayload, EventType
from courseflow.models.health import (
    AggregateStatus,
    HealthReport,
    ServiceHealth,
    ServiceStatus,
)
from courseflow.models.trigger import TriggerConfig, WorkItemTemplate
from courseflow.models.work_item import (
    Priority,
    WorkItem,
    WorkItemDescriptor,
    WorkItemStatus,
)
from courseflow.models.workflow import (
    BatchRun,
    BatchRunEntry,
    BatchSummary,
    Step,
    StepStatus,
    Workflow,
    WorkflowOptions,
    WorkflowStatus,
)

__all__ = [
    "AggregateStatus",
    "BatchRun",
    "BatchRunEntry",
    "BatchSummary",
    "BehaviorPatterns",
    "ContentChunk",
    "ContentPackage",
    "Event",
    "EventPayload",
    "EventType",
    "HealthReport",
    "LeadScore",
    "PageInteractions",
    "Priority",
    "QAReport",
    "Release",
    "RoutingDecision",
    "ServiceHealth",
    "ServiceStatus",
    "Step",
    "StepStatus",
    "TriggerConfig",
    "UserBehavior",
    "VideoPlan",
    "WorkItem",
    "WorkItemDescriptor",
    "WorkItemStatus",
    "WorkItemTemplate",
    "Workflow",
    "WorkflowOptions",
    "WorkflowStatus",
]
