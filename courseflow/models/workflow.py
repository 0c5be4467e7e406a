"""
Workflow records: owned by the Workflow Engine for their lifetime.

A Workflow moves running → completed or running → failed, never anything
else. Steps run one at a time, each only after its predecessor completed,
and `results` holds entries for completed steps only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class WorkflowStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Step(BaseModel):
    index: int
    name: str
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class Workflow(BaseModel):
    """One execution of the weekly content sequence for a subject."""

    id: str
    subject: str
    status: WorkflowStatus = WorkflowStatus.RUNNING
    steps: List[Step] = []
    results: Dict[str, Any] = {}
    started_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error: Optional[str] = None
    duration_seconds: Optional[float] = None

    @property
    def running_step(self) -> Optional[Step]:
        return next((s for s in self.steps if s.status == StepStatus.RUNNING), None)

    @property
    def completed_steps(self) -> List[Step]:
        return [s for s in self.steps if s.status == StepStatus.COMPLETED]

    def _require_running(self) -> None:
        if self.status != WorkflowStatus.RUNNING:
            raise RuntimeError(
                f"Workflow {self.id} is {self.status.value}; no further transitions allowed."
            )

    def start_step(self, name: str, now: datetime) -> Step:
        """Append a new step in the running state."""
        self._require_running()
        if any(s.status != StepStatus.COMPLETED for s in self.steps):
            raise RuntimeError(
                f"Cannot start step '{name}': a previous step has not completed."
            )
        step = Step(
            index=len(self.steps) + 1,
            name=name,
            status=StepStatus.RUNNING,
            started_at=now,
        )
        self.steps.append(step)
        return step

    def complete_step(self, step: Step, now: datetime, result: Any = None) -> None:
        """Mark the step completed. A non-None result is recorded under its name."""
        self._require_running()
        step.status = StepStatus.COMPLETED
        step.completed_at = now
        if result is not None:
            self.results[step.name] = result

    def fail(self, error: str, now: datetime) -> None:
        """Mark the running step (if any) and the workflow as failed."""
        self._require_running()
        step = self.running_step
        if step is not None:
            step.status = StepStatus.FAILED
            step.error = error
            step.completed_at = now
        self.status = WorkflowStatus.FAILED
        self.error = error
        self.failed_at = now
        self.duration_seconds = round((now - self.started_at).total_seconds(), 3)

    def complete(self, now: datetime) -> None:
        self._require_running()
        if self.running_step is not None:
            raise RuntimeError(f"Workflow {self.id} still has a running step.")
        self.status = WorkflowStatus.COMPLETED
        self.completed_at = now
        self.duration_seconds = round((now - self.started_at).total_seconds(), 3)


class WorkflowOptions(BaseModel):
    """
    Recognized workflow options. Accepts both the camelCase keys of the
    external interface (`runQA`, `createRelease`, ...) and snake_case names.
    """
    model_config = ConfigDict(extra="ignore")

    run_qa: bool = Field(
        default=True, validation_alias=AliasChoices("runQA", "run_qa")
    )
    create_release: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "createRelease", "createGitHubRelease", "create_release"
        ),
    )
    stop_on_error: bool = Field(
        default=False, validation_alias=AliasChoices("stopOnError", "stop_on_error")
    )
    delay_ms: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("delayMs", "delay", "delay_ms")
    )
    theme: Optional[str] = None
    chunk_count: int = Field(
        default=3, ge=0, validation_alias=AliasChoices("chunkCount", "chunk_count")
    )
    video_count: int = Field(
        default=7, ge=0, validation_alias=AliasChoices("videoCount", "video_count")
    )
    step_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("stepTimeoutSeconds", "step_timeout_seconds"),
    )

    @field_validator("run_qa", "create_release", mode="before")
    @classmethod
    def default_unless_false(cls, value: Any) -> Any:
        # Only an explicit false disables an optional step.
        return True if value is None else value

    @classmethod
    def from_options(cls, options: Optional[dict]) -> "WorkflowOptions":
        if isinstance(options, WorkflowOptions):
            return options
        return cls.model_validate(options or {})


class BatchRunEntry(BaseModel):
    subject: str
    status: WorkflowStatus
    workflow_id: Optional[str] = None
    error: Optional[str] = None


class BatchSummary(BaseModel):
    total_subjects: int
    successful: int = 0
    failed: int = 0
    total_work_items: int = 0
    total_chunks: int = 0
    total_videos: int = 0


class BatchRun(BaseModel):
    """Outcome of running the workflow over an inclusive range of subjects."""

    id: str
    start: int
    end: int
    status: WorkflowStatus = WorkflowStatus.RUNNING
    runs: List[BatchRunEntry] = []
    summary: BatchSummary
    analytics_report: Optional[dict] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error: Optional[str] = None
    duration_seconds: Optional[float] = None
