"""
Support Routing: decides who handles a customer action and how fast.

Behavioral Contract:
- Pure and deterministic: equal (tier, action_type, context) give equal decisions
- Primary lookup is the (tier x action_type) routing table
- A missing table cell is a RoutingError, recovered with the basic/support_request default
- Priority starts from the customer tier and is raised to high by priority
  indicator tags or by a purchase history above the high-value threshold
- response_time_minutes is the minimum of the table default and history overrides
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from courseflow.errors import RoutingError
from courseflow.models.decision import RoutingDecision
from courseflow.models.work_item import Priority

logger = logging.getLogger(__name__)


ROUTING_TABLE: Dict[str, Dict[str, Dict[str, Any]]] = {
    "premium": {
        "support_request": {"assignee": "premium_support", "response_time_minutes": 60},
        "billing_inquiry": {"assignee": "billing_specialist", "response_time_minutes": 120},
        "technical_issue": {
            "assignee": "technical_support",
            "response_time_minutes": 30,
            "requires_escalation": True,
            "escalation_assignee": "senior_technical",
            "escalation_time_minutes": 240,
        },
        "refund_request": {
            "assignee": "customer_success",
            "response_time_minutes": 240,
            "requires_escalation": True,
            "escalation_assignee": "finance_manager",
            "escalation_time_minutes": 480,
        },
    },
    "standard": {
        "support_request": {"assignee": "general_support", "response_time_minutes": 240},
        "billing_inquiry": {"assignee": "billing_support", "response_time_minutes": 480},
        "technical_issue": {"assignee": "technical_support", "response_time_minutes": 120},
        "refund_request": {
            "assignee": "billing_support",
            "response_time_minutes": 720,
            "requires_escalation": True,
            "escalation_assignee": "customer_success",
            "escalation_time_minutes": 1440,
        },
    },
    "basic": {
        "support_request": {"assignee": "general_support", "response_time_minutes": 720},
        "billing_inquiry": {"assignee": "billing_support", "response_time_minutes": 1440},
        "technical_issue": {"assignee": "general_support", "response_time_minutes": 480},
        "refund_request": {"assignee": "billing_support", "response_time_minutes": 1440},
    },
}

DEFAULT_TIER = "basic"
DEFAULT_ACTION = "support_request"

HIGH_PRIORITY_INDICATORS = frozenset({"urgent", "billing_issue", "technical_blocker"})
LOW_PRIORITY_INDICATORS = frozenset({"general_question"})

HIGH_VALUE_PURCHASE_THRESHOLD = 1000
HIGH_VALUE_RESPONSE_MINUTES = 180
COURSE_ACCESS_RESPONSE_MINUTES = 240

DEFAULT_FOLLOWUP_MINUTES = 2880
ENGAGED_FOLLOWUP_MINUTES = 1440
ENGAGED_ENROLLMENT_COUNT = 3

_TIER_PRIORITY = {
    "premium": Priority.HIGH,
    "basic": Priority.LOW,
}


def _lookup(customer_tier: str, action_type: str) -> Dict[str, Any]:
    cell = ROUTING_TABLE.get(customer_tier, {}).get(action_type)
    if cell is None:
        raise RoutingError(
            f"No routing entry for tier '{customer_tier}' and action '{action_type}'"
        )
    return cell


def _purchase_total(context: Mapping[str, Any]) -> float:
    history = context.get("purchase_history") or {}
    try:
        return float(history.get("total_value") or 0)
    except (TypeError, ValueError, AttributeError):
        return 0.0


def _indicators(context: Mapping[str, Any]) -> List[str]:
    value = context.get("priority_indicators") or []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(v) for v in value]
    return []


def _enrollment_count(context: Mapping[str, Any]) -> int:
    value = context.get("course_enrollments")
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def support_priority(
    customer_tier: str, indicators: List[str], purchase_total: float = 0.0
) -> Priority:
    """Tier baseline, lowered by general questions, raised by urgency or spend."""
    priority = _TIER_PRIORITY.get(customer_tier, Priority.MEDIUM)
    if LOW_PRIORITY_INDICATORS.intersection(indicators):
        priority = Priority.LOW
    if HIGH_PRIORITY_INDICATORS.intersection(indicators):
        priority = Priority.HIGH
    if purchase_total > HIGH_VALUE_PURCHASE_THRESHOLD:
        priority = Priority.HIGH
    return priority


def _response_overrides(context: Mapping[str, Any], purchase_total: float) -> List[int]:
    overrides = []
    if purchase_total > HIGH_VALUE_PURCHASE_THRESHOLD:
        overrides.append(HIGH_VALUE_RESPONSE_MINUTES)
    if context.get("request_type") == "course_access_issue":
        overrides.append(COURSE_ACCESS_RESPONSE_MINUTES)
    return overrides


def route(
    customer_tier: Optional[str],
    action_type: Optional[str],
    context: Optional[Mapping[str, Any]] = None,
) -> RoutingDecision:
    """Route a customer action to an assignee with a priority and response window."""
    context = context or {}
    tier = str(customer_tier) if customer_tier else DEFAULT_TIER
    action = str(action_type) if action_type else DEFAULT_ACTION

    fallback = False
    try:
        cell = _lookup(tier, action)
    except RoutingError as e:
        logger.warning("%s; using %s/%s default", e, DEFAULT_TIER, DEFAULT_ACTION)
        cell = _lookup(DEFAULT_TIER, DEFAULT_ACTION)
        fallback = True

    purchase_total = _purchase_total(context)
    response_time = min(
        [cell["response_time_minutes"], *_response_overrides(context, purchase_total)]
    )

    followup = (
        ENGAGED_FOLLOWUP_MINUTES
        if _enrollment_count(context) > ENGAGED_ENROLLMENT_COUNT
        else DEFAULT_FOLLOWUP_MINUTES
    )

    reason = f"Routed based on {tier} tier and {action} action type"
    if fallback:
        reason += f" (no table entry; defaulted to {DEFAULT_TIER}/{DEFAULT_ACTION})"

    return RoutingDecision(
        assignee=cell["assignee"],
        priority=support_priority(tier, _indicators(context), purchase_total),
        response_time_minutes=response_time,
        requires_escalation=cell.get("requires_escalation", False),
        escalation_assignee=cell.get("escalation_assignee"),
        escalation_time_minutes=cell.get("escalation_time_minutes"),
        followup_time_minutes=followup,
        reason=reason,
        fallback=fallback,
    )
