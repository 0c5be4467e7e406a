"""
Collaborator services: in-memory stand-ins for the subsystems the
orchestrator drives.

In production these would talk to the task manager, the content pipeline,
the analytics database, the learning tracker and the release host. Here they
keep their state in memory so the core runs end to end.
"""

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from courseflow.events.bus import (
    CONTENT_GENERATED,
    LEARNING_PROGRESS,
    RELEASE_CREATED,
    TASK_COMPLETED,
    EventBus,
)
from courseflow.models.content import (
    ContentChunk,
    ContentPackage,
    QAReport,
    Release,
    VideoPlan,
)
from courseflow.models.decision import UserBehavior
from courseflow.models.work_item import Priority, WorkItem
from courseflow.services.base import Service
from courseflow.store.work_items import WorkItemStore

logger = logging.getLogger(__name__)


TASK_MANAGER = "task_manager"
CONTENT_GENERATOR = "content_generator"
ANALYTICS = "analytics"
LEARNING_TRACKER = "learning_tracker"
RELEASE_PUBLISHER = "release_publisher"

VIDEO_TYPES = [
    "intro", "daily-study", "daily-study", "daily-study", "daily-study",
    "practice", "review",
]
VIDEO_DURATIONS = {"intro": 10, "daily-study": 20, "practice": 30, "review": 25}


class TaskManager(Service):
    """Creates and completes work items through the work item store."""

    name = TASK_MANAGER

    def __init__(
        self,
        store: WorkItemStore,
        bus: Optional[EventBus] = None,
        program_start: Optional[date] = None,
    ):
        super().__init__()
        self.store = store
        self.bus = bus
        self.program_start = program_start

    def week_start(self, week: int, now: datetime) -> datetime:
        """Start of a program week. Without a fixed program start, week 1 starts now."""
        if self.program_start is not None:
            anchor = datetime.combine(self.program_start, time())
        else:
            anchor = now
        return anchor + timedelta(weeks=week - 1)

    def _task(
        self,
        title: str,
        description: str,
        type: str,
        priority: Priority,
        due_at: datetime,
        now: datetime,
        **metadata,
    ) -> WorkItem:
        return WorkItem(
            title=title,
            description=description,
            type=type,
            priority=priority,
            assignee="content_team",
            # never due before creation
            due_at=max(due_at, now),
            created_at=now,
            metadata=metadata,
        )

    async def create_weekly_tasks(
        self,
        week: int,
        theme: str,
        chunk_count: int = 3,
        video_count: int = 7,
        now: Optional[datetime] = None,
    ) -> List[WorkItem]:
        """Overview, one task per content chunk and video, review and release."""
        if week < 1:
            raise ValueError(f"Week numbers start at 1, got {week}")
        now = now or datetime.utcnow()
        start = self.week_start(week, now)
        day = timedelta(days=1)

        tasks = [
            self._task(
                f"Week {week}: {theme} - Overview",
                f"Complete overview and planning for Week {week}",
                "planning", Priority.HIGH, start, now, week_number=week,
            )
        ]
        for i in range(1, chunk_count + 1):
            tasks.append(self._task(
                f"Week {week} - Content Chunk {i}",
                f"Write and review content chunk {i} for Week {week}",
                "chunk", Priority.HIGH, start + i * day, now,
                week_number=week, chunk_number=i,
            ))
        for d in range(1, video_count + 1):
            tasks.append(self._task(
                f"Week {week} Day {d} - Video Production",
                f"Complete video production for Week {week}, Day {d}",
                "video", Priority.MEDIUM, start + d * day, now,
                week_number=week, day_number=d,
                video_type=VIDEO_TYPES[(d - 1) % len(VIDEO_TYPES)],
            ))
        tasks.append(self._task(
            f"Week {week} - Quality Review",
            f"Final review and quality assurance for all Week {week} content",
            "review", Priority.HIGH, start + 7 * day, now, week_number=week,
        ))
        tasks.append(self._task(
            f"Week {week} - Content Release",
            f"Publish the Week {week} content release",
            "release", Priority.MEDIUM, start + 7 * day, now, week_number=week,
        ))

        self.store.add_many(tasks)
        logger.info("Created %d tasks for Week %s: %s", len(tasks), week, theme)
        return tasks

    async def create_work_items(self, items: List[WorkItem]) -> List[WorkItem]:
        return self.store.add_many(items)

    async def complete_task(self, item_id: str) -> WorkItem:
        item = self.store.complete(item_id)
        logger.info("Completed task %s", item_id)
        if self.bus is not None:
            await self.bus.publish(TASK_COMPLETED, item)
        return item

    async def complete_release_task(self, week: int) -> List[WorkItem]:
        """Complete the pending release task(s) of a week."""
        completed = []
        for item in self.store.find_by_metadata("week_number", week):
            if item.type == "release":
                completed.append(await self.complete_task(item.id))
        return completed

    def weekly_report(self, week: int, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        tasks = self.store.find_by_metadata("week_number", week)
        completed = sum(1 for t in tasks if t.completed_at is not None)
        return {
            "week": week,
            "total_tasks": len(tasks),
            "completed_tasks": completed,
            "completion_rate": round(completed / len(tasks) * 100, 1) if tasks else 0.0,
            "overdue_tasks": sum(
                1 for t in tasks if t.completed_at is None and t.due_at < now
            ),
        }


class ContentGenerator(Service):
    """Generates weekly content packages and scores them."""

    name = CONTENT_GENERATOR

    def __init__(self, bus: Optional[EventBus] = None):
        super().__init__()
        self.bus = bus
        self.packages: Dict[int, ContentPackage] = {}

    async def generate_weekly_content(
        self,
        week: int,
        theme: str,
        chunk_count: int = 3,
        video_count: int = 7,
    ) -> ContentPackage:
        chunks = [
            ContentChunk(
                number=i,
                title=f"Week {week} - {theme} - Part {i}",
                estimated_read_time=15 + 5 * (i - 1),
            )
            for i in range(1, chunk_count + 1)
        ]
        videos = []
        for d in range(1, video_count + 1):
            video_type = VIDEO_TYPES[(d - 1) % len(VIDEO_TYPES)]
            videos.append(VideoPlan(
                day=d,
                title=f"Week {week} Day {d} - {theme}",
                video_type=video_type,
                estimated_duration=VIDEO_DURATIONS[video_type],
            ))

        package = ContentPackage(
            week=week,
            theme=theme,
            chunks=chunks,
            videos=videos,
            generated_at=datetime.utcnow(),
        )
        self.packages[week] = package
        if self.bus is not None:
            await self.bus.publish(CONTENT_GENERATED, {"week": week, "theme": theme})
        return package

    async def run_quality_assurance(self, week: int) -> QAReport:
        package = self.packages.get(week)
        issues = []
        if package is None:
            issues.append(f"No generated content for week {week}")
        else:
            if not package.chunks:
                issues.append("Package has no study chunks")
            if not package.videos:
                issues.append("Package has no videos")
            if package.videos and package.videos[-1].video_type != "review":
                issues.append("Week does not end with a review video")
        return QAReport(
            week=week,
            overall_score=max(0.0, 100.0 - 25.0 * len(issues)),
            issues=issues,
            checked_at=datetime.utcnow(),
        )

    async def generate_personalized_content(self, user_id: str, week: int) -> dict:
        package = self.packages.get(week)
        return {
            "user_id": user_id,
            "week": week,
            "chunks": [c.title for c in package.chunks] if package else [],
            "focus": "review" if package is None else package.theme,
        }


class ContentAnalytics(Service):
    """Records content performance and learning progress metrics."""

    name = ANALYTICS

    def __init__(self):
        super().__init__()
        self.performance: List[dict] = []
        self.learning: Dict[str, List[dict]] = defaultdict(list)

    async def track_content_performance(
        self, content_id: str, content_type: str, metrics: dict
    ) -> dict:
        record = {
            "content_id": content_id,
            "content_type": content_type,
            "metrics": metrics,
            "tracked_at": datetime.utcnow().isoformat(),
        }
        self.performance.append(record)
        return record

    async def track_learning_progress(self, user_id: str, progress: dict) -> None:
        self.learning[user_id].append(progress)

    async def generate_report(self, scope: str) -> dict:
        by_type = Counter(r["content_type"] for r in self.performance)
        return {
            "scope": scope,
            "tracked_records": len(self.performance),
            "by_content_type": dict(by_type),
            "learners_tracked": len(self.learning),
            "generated_at": datetime.utcnow().isoformat(),
        }


class LearningTracker(Service):
    """Holds learner behavior snapshots and progress."""

    name = LEARNING_TRACKER

    def __init__(self, bus: Optional[EventBus] = None):
        super().__init__()
        self.bus = bus
        self._learners: Dict[str, UserBehavior] = {}
        self._progress: Dict[str, List[dict]] = defaultdict(list)

    def register_learner(self, behavior: UserBehavior) -> None:
        key = behavior.user_id or behavior.user_email
        self._learners[key] = behavior

    async def learner_snapshots(self) -> List[UserBehavior]:
        return list(self._learners.values())

    async def track_progress(self, user_id: str, progress: dict) -> None:
        self._progress[user_id].append(progress)
        if self.bus is not None:
            await self.bus.publish(
                LEARNING_PROGRESS, {"user_id": user_id, "progress": progress}
            )

    async def generate_study_recommendations(self, user_id: str) -> List[str]:
        history = self._progress.get(user_id, [])
        if not history:
            return ["Start with the week overview chunk"]
        latest = history[-1]
        if latest.get("completion_percentage", 0) < 50:
            return [
                f"Finish {latest.get('content_id', 'current content')}",
                "Watch the daily study video",
            ]
        return ["Take the weekly practice questions", "Review flagged topics"]

    async def learning_analytics(self, user_id: str) -> dict:
        history = self._progress.get(user_id, [])
        return {
            "user_id": user_id,
            "entries": len(history),
            "time_spent_minutes": sum(p.get("time_spent_minutes", 0) for p in history),
        }


class ReleasePublisher(Service):
    """Publishes a weekly content release."""

    name = RELEASE_PUBLISHER

    def __init__(self, bus: Optional[EventBus] = None):
        super().__init__()
        self.bus = bus
        self.releases: List[Release] = []

    async def create_weekly_release(self, week: int, package: ContentPackage) -> Release:
        release = Release(
            week=week,
            tag=f"week-{week}",
            name=f"Week {week}: {package.theme}",
            asset_count=len(package.chunks) + len(package.videos),
            created_at=datetime.utcnow(),
        )
        self.releases.append(release)
        if self.bus is not None:
            await self.bus.publish(RELEASE_CREATED, release)
        return release
