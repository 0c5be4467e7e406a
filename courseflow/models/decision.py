"""Decision engine outputs and inputs."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from courseflow.models.work_item import Priority


def _clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


class LeadScore(BaseModel):
    """Lead score and the buckets derived from it."""

    score: int = Field(ge=0, le=100)
    priority: Priority
    assignee: str
    follow_up_sequence: str


class RoutingDecision(BaseModel):
    """Where a customer action goes and how fast it must be answered."""

    assignee: str
    priority: Priority
    response_time_minutes: int
    requires_escalation: bool = False
    escalation_assignee: Optional[str] = None
    escalation_time_minutes: Optional[int] = None
    followup_time_minutes: int = 2880
    reason: str
    fallback: bool = False                  # True when the table had no entry


class PageInteractions(BaseModel):
    pricing_page_visits: int = 0
    course_page_time: float = 0             # seconds
    support_page_visits: int = 0


class BehaviorPatterns(BaseModel):
    recent_purchase: bool = False
    enrolled: bool = False
    email_opens: int = 0


class UserBehavior(BaseModel):
    """A behavior snapshot for one user. Scores are clamped to [0, 100]."""

    user_id: Optional[str] = None
    user_email: str = "unknown"
    engagement_score: float = 0
    conversion_likelihood: float = 0
    page_interactions: PageInteractions = PageInteractions()
    behavior_patterns: BehaviorPatterns = BehaviorPatterns()

    @field_validator("engagement_score", "conversion_likelihood")
    @classmethod
    def clamp_scores(cls, value: float) -> float:
        return _clamp_score(value)
