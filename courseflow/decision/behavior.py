"""
Behavior-Based Assignment: turns a user behavior snapshot into work items.

Rules are independent and all of them run, in order. A single snapshot can
therefore produce several descriptors.
"""

from typing import Any, Callable, List, Mapping, Optional, Union

from courseflow.models.decision import UserBehavior
from courseflow.models.work_item import Priority, WorkItemDescriptor


BehaviorRule = Callable[[UserBehavior], Optional[WorkItemDescriptor]]


def _high_intent(user: UserBehavior) -> Optional[WorkItemDescriptor]:
    if user.engagement_score > 80 and user.conversion_likelihood > 70:
        return WorkItemDescriptor(
            title="High-Intent Lead Outreach",
            description=f"Personal outreach to high-intent lead {user.user_email}",
            type="sales_outreach",
            priority=Priority.HIGH,
            assignee="senior_sales",
            due_offset_minutes=60,
            reason="High engagement and conversion likelihood detected",
        )
    return None


def _pricing_follow_up(user: UserBehavior) -> Optional[WorkItemDescriptor]:
    if (
        user.page_interactions.pricing_page_visits > 2
        and not user.behavior_patterns.recent_purchase
    ):
        return WorkItemDescriptor(
            title="Pricing Page Follow-up",
            description=(
                f"Follow up with {user.user_email} who visited pricing multiple times"
            ),
            type="sales_follow_up",
            priority=Priority.MEDIUM,
            assignee="sales_team",
            due_offset_minutes=240,
            reason="Multiple pricing page visits without purchase",
        )
    return None


def _course_interest(user: UserBehavior) -> Optional[WorkItemDescriptor]:
    if (
        user.page_interactions.course_page_time > 300
        and not user.behavior_patterns.enrolled
    ):
        return WorkItemDescriptor(
            title="Course Interest Follow-up",
            description=(
                f"Engage {user.user_email} who showed interest in course content"
            ),
            type="educational_outreach",
            priority=Priority.MEDIUM,
            assignee="content_specialist",
            due_offset_minutes=480,
            reason="High course content engagement without enrollment",
        )
    return None


def _proactive_support(user: UserBehavior) -> Optional[WorkItemDescriptor]:
    if user.page_interactions.support_page_visits > 0:
        return WorkItemDescriptor(
            title="Proactive Support Check",
            description=f"Proactive support check for {user.user_email}",
            type="proactive_support",
            priority=Priority.LOW,
            assignee="customer_success",
            due_offset_minutes=720,
            reason="Support page visits detected",
        )
    return None


def _re_engagement(user: UserBehavior) -> Optional[WorkItemDescriptor]:
    if user.engagement_score < 30 and user.behavior_patterns.email_opens < 2:
        return WorkItemDescriptor(
            title="Re-engagement Campaign",
            description=f"Re-engage low-activity user {user.user_email}",
            type="reengagement",
            priority=Priority.LOW,
            assignee="marketing_automation",
            due_offset_minutes=1440,
            reason="Low engagement score and email activity",
        )
    return None


RULES: List[BehaviorRule] = [
    _high_intent,
    _pricing_follow_up,
    _course_interest,
    _proactive_support,
    _re_engagement,
]


def assign(
    user_behavior: Union[UserBehavior, Mapping[str, Any]],
    rules: Optional[List[BehaviorRule]] = None,
) -> List[WorkItemDescriptor]:
    """Evaluate every rule against the snapshot and collect the descriptors."""
    if not isinstance(user_behavior, UserBehavior):
        user_behavior = UserBehavior.model_validate(user_behavior)

    descriptors = []
    for rule in rules if rules is not None else RULES:
        descriptor = rule(user_behavior)
        if descriptor is not None:
            descriptors.append(descriptor)
    return descriptors
