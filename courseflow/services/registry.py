"""
Service Registry & Health Monitor: owns the collaborating services.

Behavioral Contract:
- initialize() starts every service concurrently; the first failure cancels
  the rest and raises InitError
- Every registered service has exactly one health entry, never removed
- Aggregate status is healthy only if every entry is healthy, else degraded
- A failed health check is logged and downgrades the aggregate; it is never raised
- The monitor polls on a fixed interval, independent of running workflows
"""

import asyncio
import logging
import threading
import time
from datetime import datetime
from typing import Dict, List, Optional

from courseflow.errors import HealthCheckError, InitError
from courseflow.events.bus import (
    HEALTH_CHECK_COMPLETED,
    LEARNING_PROGRESS,
    RELEASE_CREATED,
    TASK_COMPLETED,
    EventBus,
)
from courseflow.models.health import (
    AggregateStatus,
    HealthReport,
    ServiceHealth,
    ServiceStatus,
)
from courseflow.services.base import Service
from courseflow.services.collaborators import ANALYTICS, TASK_MANAGER

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """
    Named collaborating services plus their latest health.
    The health map is read from request threads, so it is guarded by a lock.
    """

    def __init__(
        self,
        bus: EventBus,
        init_timeout_seconds: Optional[float] = 60.0,
        check_timeout_seconds: Optional[float] = 10.0,
    ):
        self.bus = bus
        self.init_timeout_seconds = init_timeout_seconds
        self.check_timeout_seconds = check_timeout_seconds
        self._services: Dict[str, Service] = {}
        self._health: Dict[str, ServiceHealth] = {}
        self._lock = threading.Lock()
        self.initialized = False

    # --- Registration ---

    def register(self, service: Service, name: Optional[str] = None) -> Service:
        name = name or service.name
        if name in self._services:
            raise ValueError(f"Service '{name}' is already registered")
        self._services[name] = service
        return service

    def get(self, name: str) -> Service:
        try:
            return self._services[name]
        except KeyError:
            raise KeyError(f"Service '{name}' is not registered") from None

    def names(self) -> List[str]:
        return list(self._services)

    # --- Startup ---

    async def initialize(self) -> None:
        """
        Start all services concurrently, then wire the cross-service
        subscriptions. Raises InitError naming the first failing service.
        """
        logger.info("Initializing %d services", len(self._services))
        tasks = {
            asyncio.ensure_future(service.initialize()): name
            for name, service in self._services.items()
        }
        if not tasks:
            self.initialized = True
            return

        done, pending = await asyncio.wait(
            tasks,
            timeout=self.init_timeout_seconds,
            return_when=asyncio.FIRST_EXCEPTION,
        )
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        now = datetime.utcnow()
        failure: Optional[InitError] = None
        for task, name in tasks.items():
            if task in done and task.exception() is not None:
                exc = task.exception()
                self._record(name, ServiceStatus.ERROR, now, error=str(exc))
                if failure is None:
                    failure = InitError(name, str(exc))
                    failure.__cause__ = exc
            elif task in done:
                self._record(name, ServiceStatus.HEALTHY, now)
                logger.info("Service %s initialized", name)

        # Services still pending were cancelled by a failure or hit the timeout
        reason = "initialization cancelled" if failure else "initialization timed out"
        for task, name in tasks.items():
            if task in pending:
                self._record(name, ServiceStatus.ERROR, now, error=reason)
                if failure is None:
                    failure = InitError(name, reason)

        if failure is not None:
            logger.error("Service initialization failed: %s", failure)
            raise failure

        self._wire_subscriptions()
        self.initialized = True
        logger.info("All services initialized")

    def _wire_subscriptions(self) -> None:
        """Fixed cross-service wiring, for the services that are registered."""
        analytics = self._services.get(ANALYTICS)
        task_manager = self._services.get(TASK_MANAGER)

        if analytics is not None:
            async def on_task_completed(item) -> None:
                await analytics.track_content_performance(
                    item.id,
                    item.type,
                    {"completed_at": item.completed_at.isoformat(), "type": "task_completion"},
                )

            async def on_learning_progress(data) -> None:
                await analytics.track_learning_progress(data["user_id"], data["progress"])

            self.bus.subscribe(TASK_COMPLETED, on_task_completed)
            self.bus.subscribe(LEARNING_PROGRESS, on_learning_progress)

        if task_manager is not None:
            async def on_release_created(release) -> None:
                await task_manager.complete_release_task(release.week)

            self.bus.subscribe(RELEASE_CREATED, on_release_created)

    # --- Health ---

    def _record(
        self,
        name: str,
        status: ServiceStatus,
        now: datetime,
        response_time_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> ServiceHealth:
        entry = ServiceHealth(
            service_name=name,
            status=status,
            last_check=now,
            response_time_ms=response_time_ms,
            error=error,
        )
        with self._lock:
            self._health[name] = entry
        return entry

    async def _check_service(self, name: str, service: Service) -> ServiceHealth:
        started = time.perf_counter()
        try:
            healthy = await asyncio.wait_for(
                service.health_check(), timeout=self.check_timeout_seconds
            )
        except asyncio.TimeoutError:
            err = HealthCheckError(name, "health check timed out")
            logger.warning("%s", err)
            return self._record(name, ServiceStatus.ERROR, datetime.utcnow(), error=str(err))
        except Exception as exc:
            err = HealthCheckError(name, str(exc))
            logger.warning("%s", err, exc_info=True)
            return self._record(name, ServiceStatus.ERROR, datetime.utcnow(), error=str(err))

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        status = ServiceStatus.HEALTHY if healthy else ServiceStatus.UNHEALTHY
        if not healthy:
            logger.warning("%s", HealthCheckError(name, "reported unhealthy"))
        return self._record(name, status, datetime.utcnow(), response_time_ms=elapsed_ms)

    async def check_health(self) -> HealthReport:
        """Check every service, update the health map and publish the report."""
        await asyncio.gather(
            *(self._check_service(name, service) for name, service in self._services.items())
        )
        report = self.health_report()
        logger.info("Health check completed: %s", report.overall_status.value)
        await self.bus.publish(HEALTH_CHECK_COMPLETED, report)
        return report

    def health_report(self) -> HealthReport:
        """Current health map without probing."""
        with self._lock:
            services = dict(self._health)
        healthy = all(h.status == ServiceStatus.HEALTHY for h in services.values())
        return HealthReport(
            timestamp=datetime.utcnow(),
            overall_status=AggregateStatus.HEALTHY if healthy else AggregateStatus.DEGRADED,
            services=services,
        )


class HealthMonitor:
    """Periodic health polling, run as its own asyncio task."""

    def __init__(self, registry: ServiceRegistry, interval_seconds: float = 300.0):
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.checks_run = 0

    @property
    def running(self) -> bool:
        return self._running

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Check health, then wait one interval or until stopped."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                try:
                    await self.registry.check_health()
                except Exception:
                    logger.exception("Health check cycle failed")
                self.checks_run += 1
                try:
                    await asyncio.wait_for(
                        stop_event.wait(), timeout=self.interval_seconds
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False

    def start(self) -> asyncio.Task:
        """Schedule the monitor on the running loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.ensure_future(self.run(self._stop_event))
        return self._task

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
