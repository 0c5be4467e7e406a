"""Tests for the work item store and the workflow run store."""

from datetime import datetime, timedelta

import pytest

from courseflow.errors import WorkItemNotFoundError
from courseflow.models import Priority, WorkItem, WorkItemStatus
from courseflow.models.workflow import BatchRun, BatchSummary, Workflow, WorkflowStatus
from courseflow.store.runs import WorkflowRunStore
from courseflow.store.work_items import WorkItemStore

NOW = datetime(2024, 9, 2, 10, 0)


def _make_item(type="chunk", due_in_minutes=60, **metadata) -> WorkItem:
    return WorkItem(
        title=f"{type} item",
        description="",
        type=type,
        priority=Priority.MEDIUM,
        assignee="content_team",
        due_at=NOW + timedelta(minutes=due_in_minutes),
        created_at=NOW,
        metadata=metadata,
    )


def _make_workflow(subject="4", status=WorkflowStatus.COMPLETED) -> Workflow:
    wf = Workflow(id=f"wf_{subject}_{status.value}", subject=subject, started_at=NOW)
    step = wf.start_step("planning", NOW)
    wf.complete_step(step, NOW, {"count": 2})
    if status == WorkflowStatus.COMPLETED:
        wf.complete(NOW + timedelta(seconds=3))
    else:
        wf.start_step("content_generation", NOW)
        wf.fail("generator offline", NOW + timedelta(seconds=1))
    return wf


class TestWorkItemStore:
    def test_add_and_filter(self):
        store = WorkItemStore()
        store.add_many([_make_item("chunk"), _make_item("video"), _make_item("video")])

        assert store.count() == 3
        assert len(store.list(type="video")) == 2
        assert store.list(assignee="nobody") == []

    def test_complete_is_the_only_transition(self):
        store = WorkItemStore()
        item = store.add(_make_item())
        completed = store.complete(item.id, now=NOW)

        assert completed.status == WorkItemStatus.COMPLETED
        assert completed.completed_at == NOW
        # completing twice keeps the first completion time
        store.complete(item.id, now=NOW + timedelta(hours=1))
        assert store.get(item.id).completed_at == NOW

    def test_complete_unknown_item(self):
        with pytest.raises(WorkItemNotFoundError):
            WorkItemStore().complete("task_missing")

    def test_overdue_and_summary(self):
        store = WorkItemStore()
        late = store.add(_make_item(due_in_minutes=-30))
        store.add(_make_item(due_in_minutes=30))
        done = store.add(_make_item(due_in_minutes=-60))
        store.complete(done.id)

        assert [i.id for i in store.overdue(NOW)] == [late.id]
        summary = store.summary(NOW)
        assert summary["total_tasks"] == 3
        assert summary["completed_tasks"] == 1
        assert summary["pending_tasks"] == 2
        assert summary["overdue_tasks"] == 1

    def test_find_by_metadata(self):
        store = WorkItemStore()
        store.add(_make_item(week_number=2))
        store.add(_make_item(week_number=3))
        assert len(store.find_by_metadata("week_number", 3)) == 1


class TestWorkflowRunStore:
    def test_append_and_get(self):
        store = WorkflowRunStore(":memory:")
        wf = _make_workflow()
        store.append(wf)

        record = store.get(wf.id)
        assert record["status"] == "completed"
        assert record["results"]["planning"] == {"count": 2}
        assert store.get_workflow(wf.id).model_dump() == wf.model_dump()

    def test_failed_run_keeps_partial_steps(self):
        store = WorkflowRunStore(":memory:")
        wf = _make_workflow(subject="5", status=WorkflowStatus.FAILED)
        store.append(wf)

        record = store.get(wf.id)
        assert [s["status"] for s in record["steps"]] == ["completed", "failed"]
        assert record["error"] == "generator offline"
        assert len(store.query_by_status("failed")) == 1

    def test_records_are_append_only(self):
        store = WorkflowRunStore(":memory:")
        wf = _make_workflow()
        store.append(wf)
        with pytest.raises(Exception):
            store.append(wf)

    def test_batch_runs_and_queries(self):
        store = WorkflowRunStore(":memory:")
        store.append(_make_workflow(subject="1"))
        store.append(_make_workflow(subject="2"))
        batch = BatchRun(
            id="batch_1_2",
            start=1,
            end=2,
            status=WorkflowStatus.COMPLETED,
            summary=BatchSummary(total_subjects=2, successful=2),
            started_at=NOW,
        )
        store.append(batch)

        assert store.count() == 3
        assert len(store.query_by_subject("1")) == 1
        assert store.get_workflow("batch_1_2") is None
        assert store.query_recent(limit=1)[0]["id"] == "batch_1_2"
