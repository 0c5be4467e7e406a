"""
Workflow Engine: runs the weekly content-production sequence.

Behavioral Contract:
- Steps run strictly in order, one at a time
- A step starts only after its predecessor completed
- The first failing step halts the workflow: the step and the workflow are
  marked failed, the partial record is persisted, workflow_failed is published
  and StepError is raised carrying the workflow
- Disabled optional steps are omitted entirely (no step, no result)
- Every collaborator call is bounded by the step timeout, when one is set
- No retries, no rollback
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from uuid import uuid4

from courseflow.decision import behavior
from courseflow.errors import StepError
from courseflow.events.bus import (
    BATCH_COMPLETED,
    WORKFLOW_COMPLETED,
    WORKFLOW_FAILED,
    EventBus,
)
from courseflow.models.workflow import (
    BatchRun,
    BatchRunEntry,
    BatchSummary,
    Workflow,
    WorkflowOptions,
    WorkflowStatus,
)
from courseflow.services.collaborators import (
    ANALYTICS,
    CONTENT_GENERATOR,
    LEARNING_TRACKER,
    RELEASE_PUBLISHER,
    TASK_MANAGER,
)
from courseflow.services.registry import ServiceRegistry
from courseflow.store.runs import WorkflowRunStore

logger = logging.getLogger(__name__)


# Fixed step sequence
PLANNING = "planning"
CONTENT_GENERATION = "content_generation"
ANALYTICS_TRACKING = "analytics_tracking"
LEARNING_PATH_UPDATE = "learning_path_update"
RELEASE_INTEGRATION = "release_integration"
QUALITY_ASSURANCE = "quality_assurance"
COMPLETION = "completion"

MANDATORY_STEPS = [PLANNING, CONTENT_GENERATION, ANALYTICS_TRACKING, LEARNING_PATH_UPDATE, COMPLETION]


def step_names(options: WorkflowOptions) -> List[str]:
    """The steps a workflow with these options will run, in order."""
    names = [PLANNING, CONTENT_GENERATION, ANALYTICS_TRACKING, LEARNING_PATH_UPDATE]
    if options.create_release:
        names.append(RELEASE_INTEGRATION)
    if options.run_qa:
        names.append(QUALITY_ASSURANCE)
    names.append(COMPLETION)
    return names


def _week_number(subject: Union[str, int]) -> int:
    try:
        week = int(subject)
    except (TypeError, ValueError):
        raise ValueError(f"Workflow subject must be a week number, got {subject!r}") from None
    if week < 1:
        raise ValueError(f"Week numbers start at 1, got {week}")
    return week


class WorkflowEngine:
    """
    Drives the registry's services through the step sequence.
    Finished runs go to the run store; outcomes are published on the bus.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        bus: EventBus,
        run_store: WorkflowRunStore,
        step_timeout_seconds: Optional[float] = None,
    ):
        self.registry = registry
        self.bus = bus
        self.run_store = run_store
        self.step_timeout_seconds = step_timeout_seconds

    # --- Single workflow ---

    async def execute_workflow(
        self,
        subject: Union[str, int],
        options: Union[WorkflowOptions, Dict[str, Any], None] = None,
    ) -> Workflow:
        """Run the step sequence for one week. Raises StepError on the first failure."""
        opts = WorkflowOptions.from_options(options)
        week = _week_number(subject)
        theme = opts.theme or f"Week {week} Content"
        timeout = opts.step_timeout_seconds or self.step_timeout_seconds

        workflow = Workflow(
            id=f"wf_{week}_{uuid4().hex[:12]}",
            subject=str(subject),
            started_at=datetime.utcnow(),
        )
        logger.info("Starting workflow %s for week %s (%s)", workflow.id, week, theme)

        task_manager = self.registry.get(TASK_MANAGER)
        content_generator = self.registry.get(CONTENT_GENERATOR)
        analytics = self.registry.get(ANALYTICS)
        learning_tracker = self.registry.get(LEARNING_TRACKER)

        tasks = await self._run_step(
            workflow, PLANNING, timeout,
            lambda: task_manager.create_weekly_tasks(
                week, theme, opts.chunk_count, opts.video_count
            ),
            lambda tasks: {"work_item_ids": [t.id for t in tasks], "count": len(tasks)},
        )

        package = await self._run_step(
            workflow, CONTENT_GENERATION, timeout,
            lambda: content_generator.generate_weekly_content(
                week, theme, opts.chunk_count, opts.video_count
            ),
            lambda package: package.model_dump(mode="json"),
        )

        async def _track_package() -> dict:
            metrics = {
                "chunks_created": len(package.chunks),
                "videos_planned": len(package.videos),
                "estimated_read_time": sum(c.estimated_read_time for c in package.chunks),
                "estimated_video_time": sum(v.estimated_duration for v in package.videos),
            }
            return await analytics.track_content_performance(
                f"week-{week}", "weekly_content", metrics
            )

        await self._run_step(
            workflow, ANALYTICS_TRACKING, timeout, _track_package, lambda record: record
        )

        learning_items = await self._run_step(
            workflow, LEARNING_PATH_UPDATE, timeout,
            lambda: self._update_learning_paths(week, learning_tracker, task_manager),
            lambda items: {
                "week": week,
                "work_items_created": len(items),
                "learners": len({i.metadata.get("user_email") for i in items}),
            },
        )

        if opts.create_release:
            publisher = self.registry.get(RELEASE_PUBLISHER)
            await self._run_step(
                workflow, RELEASE_INTEGRATION, timeout,
                lambda: publisher.create_weekly_release(week, package),
                lambda release: release.model_dump(mode="json"),
            )

        if opts.run_qa:
            await self._run_step(
                workflow, QUALITY_ASSURANCE, timeout,
                lambda: content_generator.run_quality_assurance(week),
                lambda report: report.model_dump(mode="json"),
            )

        async def _summarize() -> dict:
            qa = workflow.results.get(QUALITY_ASSURANCE) or {}
            return {
                "week": week,
                "theme": theme,
                "steps_completed": len(workflow.completed_steps) + 1,
                "total_steps": len(workflow.steps),
                "chunks_created": len(package.chunks),
                "videos_planned": len(package.videos),
                "work_items_created": len(tasks) + len(learning_items),
                "qa_score": qa.get("overall_score"),
            }

        await self._run_step(workflow, COMPLETION, timeout, _summarize, lambda s: s)

        workflow.complete(datetime.utcnow())
        self.run_store.append(workflow)
        logger.info(
            "Workflow %s completed in %.3fs", workflow.id, workflow.duration_seconds
        )
        await self.bus.publish(WORKFLOW_COMPLETED, workflow)
        return workflow

    async def _run_step(
        self,
        workflow: Workflow,
        name: str,
        timeout: Optional[float],
        call: Callable[[], Awaitable[Any]],
        to_result: Callable[[Any], Any],
    ) -> Any:
        """
        Run one step's collaborator call. Returns the raw value and records
        `to_result(value)`. A failure in either fails the step.
        """
        step = workflow.start_step(name, datetime.utcnow())
        logger.info("Workflow %s step %d: %s", workflow.id, step.index, name)
        try:
            if timeout:
                value = await asyncio.wait_for(call(), timeout=timeout)
            else:
                value = await call()
            result = to_result(value)
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                message = f"timed out after {timeout}s"
            else:
                message = str(e) or type(e).__name__
            await self._fail(workflow, name, message)
            raise StepError(name, message, workflow=workflow) from e

        workflow.complete_step(step, datetime.utcnow(), result)
        return value

    async def _fail(self, workflow: Workflow, step_name: str, message: str) -> None:
        workflow.fail(message, datetime.utcnow())
        logger.error("Workflow %s failed at %s: %s", workflow.id, step_name, message)
        self.run_store.append(workflow)
        await self.bus.publish(WORKFLOW_FAILED, workflow)

    async def _update_learning_paths(self, week: int, learning_tracker, task_manager) -> list:
        """Behavior-based work items for every known learner."""
        now = datetime.utcnow()
        items = []
        for snapshot in await learning_tracker.learner_snapshots():
            metadata = {
                "user_id": snapshot.user_id,
                "user_email": snapshot.user_email,
                "learning_week": week,
                "trigger_event": LEARNING_PATH_UPDATE,
            }
            items.extend(d.materialize(now, metadata) for d in behavior.assign(snapshot))
        return await task_manager.create_work_items(items)

    # --- Batch ---

    async def execute_batch_workflow(
        self,
        start: int,
        end: int,
        options: Union[WorkflowOptions, Dict[str, Any], None] = None,
    ) -> BatchRun:
        """
        Run the workflow for every week in [start, end], one after another.
        Failed weeks are recorded and the batch carries on unless stop_on_error.
        """
        if start < 1:
            raise ValueError(f"Week numbers start at 1, got {start}")
        if end < start:
            raise ValueError(f"Batch range is reversed: {start}..{end}")
        opts = WorkflowOptions.from_options(options)

        batch = BatchRun(
            id=f"batch_{start}_{end}_{uuid4().hex[:12]}",
            start=start,
            end=end,
            summary=BatchSummary(total_subjects=end - start + 1),
            started_at=datetime.utcnow(),
        )
        logger.info("Starting batch %s for weeks %d-%d", batch.id, start, end)

        for week in range(start, end + 1):
            try:
                workflow = await self.execute_workflow(str(week), opts)
            except Exception as e:
                failed_workflow = getattr(e, "workflow", None)
                batch.summary.failed += 1
                batch.runs.append(BatchRunEntry(
                    subject=str(week),
                    status=WorkflowStatus.FAILED,
                    workflow_id=failed_workflow.id if failed_workflow else None,
                    error=str(e) or type(e).__name__,
                ))
                logger.error("Week %d failed in batch %s: %s", week, batch.id, e)
                if opts.stop_on_error:
                    self._fail_batch(batch, str(e))
                    raise
            else:
                summary = workflow.results[COMPLETION]
                batch.summary.successful += 1
                batch.summary.total_work_items += summary["work_items_created"]
                batch.summary.total_chunks += summary["chunks_created"]
                batch.summary.total_videos += summary["videos_planned"]
                batch.runs.append(BatchRunEntry(
                    subject=str(week),
                    status=WorkflowStatus.COMPLETED,
                    workflow_id=workflow.id,
                ))

            if opts.delay_ms and week < end:
                await asyncio.sleep(opts.delay_ms / 1000)

        analytics = self.registry.get(ANALYTICS)
        try:
            if self.step_timeout_seconds:
                report = await asyncio.wait_for(
                    analytics.generate_report("batch"), timeout=self.step_timeout_seconds
                )
            else:
                report = await analytics.generate_report("batch")
        except Exception as e:
            self._fail_batch(batch, f"batch analytics report failed: {e}")
            raise

        now = datetime.utcnow()
        batch.analytics_report = report
        batch.status = WorkflowStatus.COMPLETED
        batch.completed_at = now
        batch.duration_seconds = round((now - batch.started_at).total_seconds(), 3)
        self.run_store.append(batch)
        logger.info(
            "Batch %s completed: %d successful, %d failed",
            batch.id, batch.summary.successful, batch.summary.failed,
        )
        await self.bus.publish(BATCH_COMPLETED, batch)
        return batch

    def _fail_batch(self, batch: BatchRun, error: str) -> None:
        now = datetime.utcnow()
        batch.status = WorkflowStatus.FAILED
        batch.error = error
        batch.failed_at = now
        batch.duration_seconds = round((now - batch.started_at).total_seconds(), 3)
        self.run_store.append(batch)
        logger.error("Batch %s failed: %s", batch.id, error)

    # --- Learner and system views ---

    async def execute_user_learning_workflow(self, user_id: str, week: int) -> dict:
        """Personalized content, a week-start progress entry and study recommendations."""
        content_generator = self.registry.get(CONTENT_GENERATOR)
        learning_tracker = self.registry.get(LEARNING_TRACKER)

        personalized = await content_generator.generate_personalized_content(user_id, week)
        await learning_tracker.track_progress(user_id, {
            "content_type": "week_start",
            "content_id": f"week_{week}",
            "completion_percentage": 0,
            "time_spent_minutes": 0,
            "notes": "Started week content",
        })
        recommendations = await learning_tracker.generate_study_recommendations(user_id)
        analytics = await learning_tracker.learning_analytics(user_id)

        logger.info("User learning workflow completed for %s, week %d", user_id, week)
        return {
            "user_id": user_id,
            "week": week,
            "personalized_content": personalized,
            "recommendations": recommendations,
            "analytics": analytics,
            "generated_at": datetime.utcnow().isoformat(),
        }

    async def generate_system_report(self) -> dict:
        """Health, content metrics, work item summary and recent runs in one record."""
        health = await self.registry.check_health()
        content_metrics = await self.registry.get(ANALYTICS).generate_report("system")
        task_summary = self.registry.get(TASK_MANAGER).store.summary()
        learners = await self.registry.get(LEARNING_TRACKER).learner_snapshots()

        recommendations = []
        if health.overall_status.value != "healthy":
            recommendations.append("Investigate degraded services before the next batch")
        if task_summary["overdue_tasks"]:
            recommendations.append(
                f"Resolve {task_summary['overdue_tasks']} overdue work items"
            )
        failed_runs = self.run_store.query_by_status(WorkflowStatus.FAILED.value)
        if failed_runs:
            recommendations.append(f"Re-run {len(failed_runs)} failed workflow runs")

        logger.info("System report generated")
        return {
            "generated_at": datetime.utcnow().isoformat(),
            "system_health": health.model_dump(mode="json"),
            "content_metrics": content_metrics,
            "task_summary": task_summary,
            "learning_metrics": {"active_learners": len(learners)},
            "recent_runs": self.run_store.query_recent(limit=10),
            "recommendations": recommendations,
        }
