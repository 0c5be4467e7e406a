"""
Lead Scoring: turns a lead capture into a 0-100 score and a follow-up bucket.

Behavioral Contract:
- Pure: no side effects, no I/O
- score = source weight + lead magnet weight + behavioral terms
- Behavioral terms: 2 x pages_visited + seconds_on_site / 60 + 5 x return_visits
- The result is always clamped to [0, 100]
- Buckets: > 70 high, > 40 medium, else low
"""

from typing import Any, Mapping, Union

from courseflow.models.decision import LeadScore
from courseflow.models.event import Event, EventPayload
from courseflow.models.work_item import Priority


SOURCE_WEIGHTS = {
    "organic_search": 30,
    "paid_search": 25,
    "social_media": 20,
    "email_campaign": 35,
    "direct_traffic": 40,
    "referral": 25,
}
DEFAULT_SOURCE_WEIGHT = 15

MAGNET_WEIGHTS = {
    "pmp_guide": 40,
    "practice_exam": 45,
    "study_schedule": 35,
    "webinar_registration": 50,
    "consultation_booking": 60,
}
DEFAULT_MAGNET_WEIGHT = 20

HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 40

# (priority, assignee, follow-up sequence) per bucket
_BUCKETS = {
    Priority.HIGH: ("senior_sales", "high_intent_sequence"),
    Priority.MEDIUM: ("sales_team", "nurturing_sequence"),
    Priority.LOW: ("marketing_qualified_leads", "awareness_sequence"),
}

LeadInput = Union[Event, EventPayload, Mapping[str, Any]]


def _as_mapping(lead: LeadInput) -> Mapping[str, Any]:
    if isinstance(lead, Event):
        return lead.payload.as_context()
    if isinstance(lead, EventPayload):
        return lead.as_context()
    return lead


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _weight(table: Mapping[str, int], key: Any, default: int) -> int:
    return table.get(key, default) if isinstance(key, str) else default


def _behavior_points(behavior: Mapping[str, Any]) -> float:
    return (
        2 * _number(behavior.get("pages_visited"))
        + _number(behavior.get("time_on_site")) / 60
        + 5 * _number(behavior.get("return_visits"))
    )


def score(lead: LeadInput) -> int:
    """Score a lead capture. Accepts `lead_source`/`source` and `user_behavior`/`behavior`."""
    data = _as_mapping(lead)
    source = data.get("lead_source") or data.get("source")
    behavior = data.get("user_behavior") or data.get("behavior") or {}

    total = _weight(SOURCE_WEIGHTS, source, DEFAULT_SOURCE_WEIGHT)
    total += _weight(MAGNET_WEIGHTS, data.get("lead_magnet_type"), DEFAULT_MAGNET_WEIGHT)
    if isinstance(behavior, Mapping):
        total += _behavior_points(behavior)

    return int(max(0, min(total, 100)))


def priority_for(lead_score: int) -> Priority:
    if lead_score > HIGH_THRESHOLD:
        return Priority.HIGH
    if lead_score > MEDIUM_THRESHOLD:
        return Priority.MEDIUM
    return Priority.LOW


def classify(lead_score: int) -> LeadScore:
    """Map a score onto its priority, assignee pool and follow-up sequence."""
    priority = priority_for(lead_score)
    assignee, sequence = _BUCKETS[priority]
    return LeadScore(
        score=lead_score,
        priority=priority,
        assignee=assignee,
        follow_up_sequence=sequence,
    )


def evaluate(lead: LeadInput) -> LeadScore:
    """Score and classify in one call."""
    return classify(score(lead))
