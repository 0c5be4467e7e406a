"""Tests for core data models."""

from datetime import datetime, timedelta

import pytest

from courseflow.models import (
    EventPayload,
    EventType,
    Priority,
    UserBehavior,
    WorkItemDescriptor,
    WorkItemStatus,
)
from courseflow.models.event import (
    PurchaseCompletedPayload,
    payload_model_for,
    required_fields,
)
from courseflow.models.workflow import StepStatus, Workflow, WorkflowOptions, WorkflowStatus


def _make_workflow() -> Workflow:
    return Workflow(id="wf_test", subject="10", started_at=datetime(2024, 9, 1, 9, 0))


class TestWorkItemDescriptor:
    def test_materialize_sets_due_date_from_offset(self):
        now = datetime(2024, 9, 1, 12, 0)
        descriptor = WorkItemDescriptor(
            title="Follow up",
            description="Call the lead",
            type="sales_follow_up",
            priority=Priority.MEDIUM,
            assignee="sales_team",
            due_offset_minutes=240,
            reason="Pricing visits",
        )
        item = descriptor.materialize(now, {"user_email": "a@b.com"})

        assert item.created_at == now
        assert item.due_at == now + timedelta(minutes=240)
        assert item.status == WorkItemStatus.PENDING
        assert item.metadata["user_email"] == "a@b.com"
        assert item.metadata["assignment_reason"] == "Pricing visits"

    def test_negative_offset_rejected(self):
        with pytest.raises(Exception):
            WorkItemDescriptor(
                title="x", description="", type="t",
                priority=Priority.LOW, assignee="a", due_offset_minutes=-1,
            )


class TestUserBehavior:
    def test_scores_clamped(self):
        user = UserBehavior(engagement_score=140, conversion_likelihood=-5)
        assert user.engagement_score == 100
        assert user.conversion_likelihood == 0

    def test_nested_defaults(self):
        user = UserBehavior.model_validate({"page_interactions": {"pricing_page_visits": 3}})
        assert user.page_interactions.pricing_page_visits == 3
        assert user.behavior_patterns.recent_purchase is False


class TestEventPayload:
    def test_get_reads_declared_and_extra_fields(self):
        payload = PurchaseCompletedPayload(
            user_id="u1", order_id=7, total=49.0, coupon="SPRING"
        )
        assert payload.get("total") == 49.0
        assert payload.get("coupon") == "SPRING"
        assert payload.get("missing", "default") == "default"

    def test_generic_payload_for_unlisted_types(self):
        assert payload_model_for(EventType.PAGE_VIEW) is not EventPayload
        assert payload_model_for(EventType.CART_ABANDONED) is EventPayload
        assert required_fields(EventType.CART_ABANDONED) == []

    def test_required_fields(self):
        assert set(required_fields(EventType.PURCHASE_COMPLETED)) == {
            "user_id", "order_id", "total",
        }
        assert set(required_fields(EventType.LEAD_CAPTURE)) == {"email", "lead_magnet_type"}


class TestWorkflow:
    def test_step_lifecycle(self):
        wf = _make_workflow()
        now = datetime(2024, 9, 1, 9, 1)
        step = wf.start_step("planning", now)
        assert wf.running_step is step

        wf.complete_step(step, now, {"count": 3})
        assert wf.results == {"planning": {"count": 3}}
        assert wf.running_step is None

        wf.complete(now + timedelta(seconds=5))
        assert wf.status == WorkflowStatus.COMPLETED
        assert wf.duration_seconds == 65.0

    def test_step_requires_completed_predecessor(self):
        wf = _make_workflow()
        wf.start_step("planning", datetime.utcnow())
        with pytest.raises(RuntimeError):
            wf.start_step("content_generation", datetime.utcnow())

    def test_none_result_not_recorded(self):
        wf = _make_workflow()
        step = wf.start_step("analytics_tracking", datetime.utcnow())
        wf.complete_step(step, datetime.utcnow(), None)
        assert "analytics_tracking" not in wf.results

    def test_fail_marks_running_step(self):
        wf = _make_workflow()
        done = wf.start_step("planning", datetime.utcnow())
        wf.complete_step(done, datetime.utcnow(), "ok")
        wf.start_step("content_generation", datetime.utcnow())

        wf.fail("generator offline", datetime.utcnow())

        assert wf.status == WorkflowStatus.FAILED
        assert wf.steps[1].status == StepStatus.FAILED
        assert wf.steps[1].error == "generator offline"
        assert list(wf.results) == ["planning"]

    def test_no_transition_after_terminal_state(self):
        wf = _make_workflow()
        wf.complete(datetime.utcnow())
        with pytest.raises(RuntimeError):
            wf.fail("late", datetime.utcnow())


class TestWorkflowOptions:
    def test_defaults(self):
        opts = WorkflowOptions.from_options(None)
        assert opts.run_qa is True
        assert opts.create_release is True
        assert opts.stop_on_error is False
        assert opts.delay_ms == 0

    def test_camel_case_aliases(self):
        opts = WorkflowOptions.from_options({
            "runQA": False,
            "createGitHubRelease": False,
            "stopOnError": True,
            "delayMs": 250,
            "chunkCount": 2,
        })
        assert opts.run_qa is False
        assert opts.create_release is False
        assert opts.stop_on_error is True
        assert opts.delay_ms == 250
        assert opts.chunk_count == 2

    def test_null_keeps_optional_steps_enabled(self):
        opts = WorkflowOptions.from_options({"runQA": None, "createRelease": None})
        assert opts.run_qa is True
        assert opts.create_release is True
