"""
courseflow API: FastAPI endpoints.

HTTP ingress for the orchestration core:
- Event ingestion (single and batch) from the site plugin
- Trigger registration
- Work item listing and completion
- Workflow execution and run lookup
- Health and system reports

All endpoints except /health require the plugin's API key.
"""

import re
import secrets
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from courseflow.config import Settings
from courseflow.errors import (
    InitError,
    StepError,
    TriggerError,
    ValidationError,
    WorkItemNotFoundError,
)
from courseflow.models.trigger import WorkItemTemplate
from courseflow.models.work_item import WorkItemStatus
from courseflow.orchestrator import Orchestrator

NONCE_PATTERN = re.compile(r"^[a-f0-9]{10}$")


# --- Request Models ---

class EventBatchRequest(BaseModel):
    events: List[Dict[str, Any]] = []


class TriggerCreateRequest(BaseModel):
    name: str
    event_type: str
    work_item_templates: List[WorkItemTemplate] = []


class WorkflowRunRequest(BaseModel):
    subject: str
    options: Dict[str, Any] = {}


class WorkflowBatchRequest(BaseModel):
    start: int
    end: int
    options: Dict[str, Any] = {}


# --- Application Factory ---

def create_app(
    orchestrator: Optional[Orchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or (orchestrator.settings if orchestrator else Settings())
    orch = orchestrator or Orchestrator(settings)

    app = FastAPI(
        title="courseflow API",
        description="Course operations orchestration: events, work items and workflows",
        version="0.1.0",
    )
    app.state.orchestrator = orch
    app.state.settings = settings

    def require_api_key(
        x_api_key: Optional[str] = Header(None),
        x_plugin_id: Optional[str] = Header(None),
        x_nonce: Optional[str] = Header(None),
    ) -> str:
        """Match the key against the plugin's configured key. Returns the plugin id."""
        plugin_id = x_plugin_id or settings.default_plugin_id
        expected = settings.api_keys.get(plugin_id)
        if not x_api_key or expected is None or not secrets.compare_digest(x_api_key, expected):
            raise HTTPException(401, "Invalid API key")
        if x_nonce is not None and not NONCE_PATTERN.match(x_nonce):
            raise HTTPException(401, "Invalid nonce")
        return plugin_id

    authenticated = [Depends(require_api_key)]

    # === EVENTS ===

    @app.post("/events", dependencies=authenticated)
    async def ingest_event(request: Request):
        """Validate and dispatch one event. Returns the created work items."""
        body = await request.json()
        if not isinstance(body, dict):
            raise HTTPException(422, {"message": "Event body must be an object", "errors": []})
        try:
            items = await orch.router.dispatch(body.get("event_type"), body)
        except ValidationError as e:
            raise HTTPException(422, {"message": str(e), "errors": e.errors})
        except TriggerError as e:
            raise HTTPException(500, {"message": str(e), "trigger": e.trigger_name})
        return {
            "success": True,
            "event_type": body.get("event_type"),
            "work_items": [i.model_dump(mode="json") for i in items],
        }

    @app.post("/events/batch", dependencies=authenticated)
    async def ingest_batch(req: EventBatchRequest):
        """Each event is processed independently; one failure does not stop the rest."""
        if not req.events:
            raise HTTPException(400, "No events provided")
        if len(req.events) > settings.max_batch_events:
            raise HTTPException(
                413, f"Batch exceeds the limit of {settings.max_batch_events} events"
            )

        results = []
        for index, event in enumerate(req.events):
            event_type = event.get("event_type")
            try:
                items = await orch.router.dispatch(event_type, event)
            except ValidationError as e:
                results.append({
                    "index": index, "event_type": event_type,
                    "success": False, "errors": e.errors,
                })
            except TriggerError as e:
                results.append({
                    "index": index, "event_type": event_type,
                    "success": False, "errors": [str(e)],
                })
            else:
                results.append({
                    "index": index, "event_type": event_type,
                    "success": True, "work_item_ids": [i.id for i in items],
                })

        processed = sum(1 for r in results if r["success"])
        return {
            "processed": processed,
            "failed": len(results) - processed,
            "results": results,
        }

    # === TRIGGERS ===

    @app.post("/triggers", dependencies=authenticated)
    def register_trigger(req: TriggerCreateRequest):
        try:
            trigger = orch.router.register_trigger(
                req.event_type,
                {"name": req.name, "work_item_templates": req.work_item_templates},
            )
        except ValueError as e:
            raise HTTPException(422, str(e))
        return trigger.model_dump(mode="json")

    @app.get("/triggers", dependencies=authenticated)
    def list_triggers(event_type: Optional[str] = None):
        try:
            triggers = orch.router.triggers(event_type)
        except ValueError:
            raise HTTPException(422, f"Invalid event type: {event_type}")
        return [t.model_dump(mode="json") for t in triggers]

    # === WORK ITEMS ===

    @app.get("/tasks", dependencies=authenticated)
    def list_tasks(
        status: Optional[WorkItemStatus] = None,
        assignee: Optional[str] = None,
        type: Optional[str] = None,
    ):
        items = orch.work_items.list(status=status, assignee=assignee, type=type)
        return [i.model_dump(mode="json") for i in items]

    @app.post("/tasks/{task_id}/complete", dependencies=authenticated)
    async def complete_task(task_id: str):
        try:
            item = await orch.task_manager.complete_task(task_id)
        except WorkItemNotFoundError:
            raise HTTPException(404, "Work item not found")
        return item.model_dump(mode="json")

    # === WORKFLOWS ===

    @app.post("/workflows/run", dependencies=authenticated)
    async def run_workflow(req: WorkflowRunRequest):
        await orch.start()
        try:
            workflow = await orch.engine.execute_workflow(req.subject, req.options)
        except ValueError as e:
            raise HTTPException(400, str(e))
        except StepError as e:
            raise HTTPException(500, {
                "message": str(e),
                "step": e.step_name,
                "workflow": e.workflow.model_dump(mode="json") if e.workflow else None,
            })
        return workflow.model_dump(mode="json")

    @app.post("/workflows/batch", dependencies=authenticated)
    async def run_batch(req: WorkflowBatchRequest):
        await orch.start()
        try:
            batch = await orch.engine.execute_batch_workflow(req.start, req.end, req.options)
        except ValueError as e:
            raise HTTPException(400, str(e))
        except StepError as e:
            raise HTTPException(500, {"message": str(e), "step": e.step_name})
        return batch.model_dump(mode="json")

    @app.get("/workflows/{run_id}", dependencies=authenticated)
    def get_run(run_id: str):
        record = orch.runs.get(run_id)
        if record is None:
            raise HTTPException(404, "Workflow run not found")
        return record

    # === LEARNERS & REPORTS ===

    @app.post("/learners/{user_id}/weeks/{week}", dependencies=authenticated)
    async def run_learner_workflow(user_id: str, week: int):
        await orch.start()
        return await orch.engine.execute_user_learning_workflow(user_id, week)

    @app.get("/reports/system", dependencies=authenticated)
    async def system_report():
        await orch.start()
        return await orch.engine.generate_system_report()

    # === HEALTH ===

    @app.get("/health")
    async def health():
        try:
            await orch.start()
        except InitError:
            return orch.registry.health_report().model_dump(mode="json")
        report = await orch.health()
        return report.model_dump(mode="json")

    return app
