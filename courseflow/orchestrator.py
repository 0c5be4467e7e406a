"""
Orchestrator: composition root.

Builds the bus, the stores, the collaborator services, the registry, the
router, the workflow engine and the health monitor from one Settings object.
Everything is owned by the instance; there is no module-level state.
"""

import asyncio
import logging
from typing import Optional

from courseflow.config import Settings
from courseflow.events.bus import EventBus
from courseflow.models.health import HealthReport
from courseflow.router.router import EventRouter
from courseflow.services.collaborators import (
    ContentAnalytics,
    ContentGenerator,
    LearningTracker,
    ReleasePublisher,
    TaskManager,
)
from courseflow.services.registry import HealthMonitor, ServiceRegistry
from courseflow.store.runs import WorkflowRunStore
from courseflow.store.work_items import WorkItemStore
from courseflow.workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class Orchestrator:
    """Wires the core components together and manages their lifecycle."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        s = self.settings

        self.bus = EventBus()
        self.work_items = WorkItemStore()
        self.runs = WorkflowRunStore(s.run_store_path)

        self.task_manager = TaskManager(self.work_items, self.bus, s.program_start_date)
        self.content_generator = ContentGenerator(self.bus)
        self.analytics = ContentAnalytics()
        self.learning_tracker = LearningTracker(self.bus)
        self.release_publisher = ReleasePublisher(self.bus)

        self.registry = ServiceRegistry(
            self.bus,
            init_timeout_seconds=s.service_init_timeout_seconds,
            check_timeout_seconds=s.health_check_timeout_seconds,
        )
        for service in (
            self.task_manager,
            self.content_generator,
            self.analytics,
            self.learning_tracker,
            self.release_publisher,
        ):
            self.registry.register(service)

        self.router = EventRouter(self.work_items, self.bus)
        self.engine = WorkflowEngine(
            self.registry, self.bus, self.runs, step_timeout_seconds=s.step_timeout_seconds
        )
        self.monitor = HealthMonitor(self.registry, s.health_check_interval_seconds)
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Orchestrator":
        return cls(settings)

    async def start(self, monitor: bool = False) -> None:
        """Initialize services once; optionally start periodic health polling."""
        async with self._init_lock:
            if not self.registry.initialized:
                await self.registry.initialize()
        if monitor:
            self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()

    async def health(self) -> HealthReport:
        return await self.registry.check_health()

    def close(self) -> None:
        self.runs.close()
