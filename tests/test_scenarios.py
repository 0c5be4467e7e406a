"""
End-to-end scenarios through a fully wired Orchestrator.

  1. A learner's journey: lead capture → registration → purchase →
     enrollment → support request → course completion, every event
     turning into assigned, time-bound work items
  2. A production cycle: two weeks of content in a batch, one of them
     failing, followed by content-team task completion feeding analytics
     and a system report reflecting all of it
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from courseflow.config import Settings
from courseflow.errors import ValidationError
from courseflow.models import Priority, WorkItemStatus
from courseflow.models.workflow import WorkflowStatus
from courseflow.orchestrator import Orchestrator

NOW = datetime(2024, 9, 2, 9, 0)
EMAIL = "learner@example.com"


class TestLearnerJourney:
    def setup_method(self):
        self.orch = Orchestrator(Settings())
        self.orch.router.register_trigger("course_completion", {
            "name": "certificate",
            "work_item_templates": [{
                "title_template": "Send certificate to {user_email}",
                "description_template": "Course {course_id} finished",
                "type": "certificate",
                "priority": "high",
                "assignee": "community",
                "due_offset_minutes": 120,
            }],
        })

    def _dispatch(self, event_type, **payload):
        return asyncio.run(self.orch.router.dispatch(event_type, payload, now=NOW))

    def test_full_journey(self):
        lead = self._dispatch(
            "lead_capture",
            email=EMAIL,
            lead_magnet_type="pmp_guide",
            source="organic_search",
        )
        # 30 + 40 = 70, not above the high threshold
        assert lead[0].priority == Priority.MEDIUM
        assert lead[0].assignee == "sales_team"
        assert lead[0].due_at == NOW + timedelta(hours=24)

        self._dispatch("user_registration", user_id="u1", email=EMAIL)
        self._dispatch(
            "purchase_completed", user_id="u1", order_id="A-77", total=499, user_email=EMAIL
        )
        self._dispatch("course_enrollment", user_id="u1", course_id="pmp", user_email=EMAIL)
        support = self._dispatch(
            "support_request",
            customer_tier="premium",
            action_type="technical_issue",
            user_email=EMAIL,
        )
        completion = self._dispatch("course_completion", course_id="pmp", user_email=EMAIL)

        assert len(support) == 2
        certificate = completion[-1]
        assert certificate.title == f"Send certificate to {EMAIL}"
        assert certificate.description == "Course pmp finished"
        assert certificate.metadata["trigger_name"] == "certificate"

        store = self.orch.work_items
        assert store.count() == 2 + 1 + 3 + 2 + 2 + 3
        assert all(i.due_at >= i.created_at for i in store.list())
        assert all(i.status == WorkItemStatus.PENDING for i in store.list())
        assert len(store.find_by_metadata("user_email", EMAIL)) == store.count()

    def test_invalid_event_leaves_no_trace(self):
        with pytest.raises(ValidationError):
            self._dispatch("purchase_completed", user_id="u1", order_id="A-78")
        assert self.orch.work_items.count() == 0


class TestProductionCycle:
    def setup_method(self):
        self.orch = Orchestrator(Settings())
        original = self.orch.content_generator.generate_weekly_content

        async def flaky(week, theme, chunk_count=3, video_count=7):
            if week == 2:
                raise RuntimeError("template repository unavailable")
            return await original(week, theme, chunk_count, video_count)

        self.orch.content_generator.generate_weekly_content = flaky

    def test_batch_then_task_completion(self):
        orch = self.orch

        async def run():
            await orch.start()
            batch = await orch.engine.execute_batch_workflow(1, 2, {"runQA": False})
            video = orch.work_items.list(type="video")[0]
            await orch.task_manager.complete_task(video.id)
            report = await orch.engine.generate_system_report()
            return batch, video, report

        batch, video, report = asyncio.run(run())

        assert batch.status == WorkflowStatus.COMPLETED
        assert batch.summary.successful == 1
        assert batch.summary.failed == 1
        assert batch.runs[1].error

        # week 1 release completed through the bus, then the video by hand
        tracked = [r["content_id"] for r in orch.analytics.performance]
        assert video.id in tracked
        assert "week-1" in tracked

        assert report["task_summary"]["completed_tasks"] == 2
        assert any("failed workflow runs" in r for r in report["recommendations"])
        assert orch.runs.count() == 3
