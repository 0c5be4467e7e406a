"""
Error taxonomy for the orchestration core.

Validation and routing errors are handled at the boundary and never corrupt
shared state. Step and init errors reach the caller with the partial workflow
or registry state attached for diagnosis. Nothing in the core retries.
"""

from typing import List, Optional


class CourseflowError(Exception):
    """Base class for all orchestration errors."""
    pass


class ValidationError(CourseflowError):
    """Raised when an inbound event is malformed or incomplete."""

    def __init__(self, event_type: str, errors: List[str]):
        self.event_type = event_type
        self.errors = list(errors)
        super().__init__(
            f"Event validation failed for '{event_type}': {'; '.join(self.errors)}"
        )


class RoutingError(CourseflowError):
    """No routing table entry applies. Always recovered with a default."""
    pass


class TriggerError(CourseflowError):
    """Raised when a registered trigger fails to expand into work items."""

    def __init__(self, trigger_name: str, message: str):
        self.trigger_name = trigger_name
        super().__init__(f"Trigger '{trigger_name}' failed: {message}")


class TemplateError(TriggerError):
    """Raised when a work item template cannot be interpolated."""
    pass


class StepError(CourseflowError):
    """Raised when a workflow step fails. Carries the failed workflow record."""

    def __init__(self, step_name: str, message: str, workflow=None):
        self.step_name = step_name
        self.workflow = workflow
        super().__init__(f"Step '{step_name}' failed: {message}")


class InitError(CourseflowError):
    """Raised when a registered service fails to start."""

    def __init__(self, service_name: str, message: str):
        self.service_name = service_name
        super().__init__(f"Service '{service_name}' failed to initialize: {message}")


class HealthCheckError(CourseflowError):
    """A health check failed. Logged and folded into the aggregate status."""

    def __init__(self, service_name: str, message: Optional[str] = None):
        self.service_name = service_name
        super().__init__(
            f"Health check failed for '{service_name}'"
            + (f": {message}" if message else "")
        )


class WorkItemNotFoundError(CourseflowError):
    """Raised when a work item id is unknown to the store."""
    pass
