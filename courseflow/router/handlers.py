"""
Fixed event handlers: one per event type that produces follow-up work.

Each handler is pure: it maps a validated Event and the dispatch time to the
work items to persist, consulting the Decision Engines where the outcome
depends on scoring or routing. Event types without a handler produce no
fixed work items (registered triggers still run).
"""

from datetime import datetime
from typing import Callable, Dict, List

from courseflow.decision import behavior, lead_scoring, support_routing
from courseflow.models.event import Event, EventType
from courseflow.models.work_item import Priority, WorkItem, WorkItemDescriptor

Handler = Callable[[Event, datetime], List[WorkItem]]

HOUR = 60
DAY = 24 * HOUR


def _email(event: Event) -> str:
    return event.payload.get("user_email") or event.payload.get("email") or "unknown"


def _item(
    event: Event,
    now: datetime,
    title: str,
    description: str,
    type: str,
    priority: Priority,
    assignee: str,
    due_offset_minutes: int,
    **metadata,
) -> WorkItem:
    descriptor = WorkItemDescriptor(
        title=title,
        description=description,
        type=type,
        priority=priority,
        assignee=assignee,
        due_offset_minutes=due_offset_minutes,
    )
    base = {
        "event_id": event.id,
        "trigger_event": event.type.value,
        "user_id": event.payload.get("user_id"),
        "user_email": _email(event),
    }
    return descriptor.materialize(now, {**base, **metadata})


def handle_course_enrollment(event: Event, now: datetime) -> List[WorkItem]:
    email = _email(event)
    course_id = event.payload.get("course_id")
    return [
        _item(
            event, now,
            "Welcome Sequence - Course Enrollment",
            f"Send welcome email and setup course access for user {email}",
            "customer_onboarding", Priority.HIGH, "customer_success", DAY,
            course_id=course_id,
            enrollment_type=event.payload.get("enrollment_type"),
        ),
        _item(
            event, now,
            "Course Progress Tracking Setup",
            f"Initialize progress tracking for {email} in course {course_id}",
            "system_setup", Priority.MEDIUM, "system", 2 * HOUR,
            course_id=course_id,
        ),
    ]


def handle_purchase_completed(event: Event, now: datetime) -> List[WorkItem]:
    email = _email(event)
    order = {
        "order_id": event.payload.get("order_id"),
        "course_id": event.payload.get("course_id"),
    }
    return [
        _item(
            event, now,
            "Customer Onboarding - Course Purchase",
            f"Complete onboarding sequence for course purchase by {email}",
            "customer_onboarding", Priority.HIGH, "customer_success", 4 * HOUR,
            total=event.payload.get("total"),
            payment_method=event.payload.get("payment_method"),
            **order,
        ),
        _item(
            event, now,
            "Course Access Provisioning",
            f"Provision full course access for {email} after purchase",
            "access_management", Priority.HIGH, "system", 30,
            **order,
        ),
        _item(
            event, now,
            "Post-Purchase Follow-up Sequence",
            f"Schedule follow-up emails and check-ins for {email}",
            "email_marketing", Priority.MEDIUM, "marketing", 7 * DAY,
            **order,
        ),
    ]


def handle_form_submission(event: Event, now: datetime) -> List[WorkItem]:
    email = _email(event)
    form_type = event.payload.get("form_type")
    submission = {"form_type": form_type, "submission_id": event.payload.get("submission_id")}

    if form_type == "contact":
        return [_item(
            event, now,
            "Contact Form Follow-up",
            f"Respond to contact form submission from {email}",
            "customer_support", Priority.HIGH, "support", 2 * HOUR,
            form_data=event.payload.get("form_data"),
            **submission,
        )]
    if form_type == "lead_magnet":
        return [_item(
            event, now,
            "Lead Magnet Follow-up Sequence",
            f"Start nurturing sequence for lead magnet download by {email}",
            "lead_nurturing", Priority.MEDIUM, "marketing", DAY,
            **submission,
        )]
    return []


def handle_lead_capture(event: Event, now: datetime) -> List[WorkItem]:
    email = _email(event)
    lead = lead_scoring.evaluate(event)
    source = event.payload.get("lead_source") or event.payload.get("source") or "unknown"
    due = 2 * HOUR if lead.priority == Priority.HIGH else DAY

    return [
        _item(
            event, now,
            f"Lead Qualification - {source}",
            f"Qualify lead {email} (Score: {lead.score}) from {source}",
            "lead_qualification", lead.priority, lead.assignee, due,
            lead_source=source,
            lead_magnet_type=event.payload.get("lead_magnet_type"),
            lead_score=lead.score,
        ),
        _item(
            event, now,
            "Lead Follow-up Sequence",
            f"Execute {lead.follow_up_sequence} for {email}",
            "lead_nurturing", Priority.MEDIUM, "marketing_automation", 4 * HOUR,
            lead_score=lead.score,
            sequence_type=lead.follow_up_sequence,
        ),
    ]


def handle_user_registration(event: Event, now: datetime) -> List[WorkItem]:
    email = _email(event)
    return [_item(
        event, now,
        "New User Welcome",
        f"Send welcome email and setup account for {email}",
        "user_onboarding", Priority.HIGH, "customer_success", 2 * HOUR,
        registration_source=event.payload.get("registration_source"),
    )]


def _escalation(event: Event, now: datetime, decision, action: str, tier: str,
                original: WorkItem) -> WorkItem:
    return _item(
        event, now,
        f"Escalation Review - {action}",
        f"Review escalation for {tier} customer {_email(event)}",
        "escalation_review", Priority.HIGH, decision.escalation_assignee,
        decision.escalation_time_minutes or 0,
        original_ticket_id=original.id,
    )


def handle_support_request(event: Event, now: datetime) -> List[WorkItem]:
    """Support ticket routed by tier and action, plus an escalation review if required."""
    email = _email(event)
    context = event.payload.as_context()
    action = event.payload.get("action_type", support_routing.DEFAULT_ACTION)
    tier = event.payload.get("customer_tier", support_routing.DEFAULT_TIER)
    decision = support_routing.route(tier, action, context)

    ticket = _item(
        event, now,
        f"Customer Action: {action}",
        f"Handle {action} from {tier} customer {email}",
        "customer_support", decision.priority, decision.assignee,
        decision.response_time_minutes,
        action_type=action,
        customer_tier=tier,
        request_type=event.payload.get("request_type"),
        routing_reason=decision.reason,
        routing_fallback=decision.fallback,
        followup_time_minutes=decision.followup_time_minutes,
    )
    items = [ticket]
    if decision.requires_escalation:
        items.append(_escalation(event, now, decision, action, tier, ticket))
    return items


def handle_refund_request(event: Event, now: datetime) -> List[WorkItem]:
    email = _email(event)
    order_id = event.payload.get("order_id")
    tier = event.payload.get("customer_tier", support_routing.DEFAULT_TIER)

    refund = _item(
        event, now,
        "Process Refund Request",
        f"Process refund for order {order_id} from {email}",
        "refund_processing", Priority.HIGH, "finance", DAY,
        order_id=order_id,
        refund_reason=event.payload.get("refund_reason"),
    )
    items = [refund]
    decision = support_routing.route(tier, "refund_request", event.payload.as_context())
    if decision.requires_escalation:
        items.append(_escalation(event, now, decision, "refund_request", tier, refund))
    return items


def handle_course_completion(event: Event, now: datetime) -> List[WorkItem]:
    email = _email(event)
    course_id = event.payload.get("course_id")
    return [
        _item(
            event, now,
            "Course Completion Follow-up",
            f"Send completion certificate and follow-up to {email}",
            "customer_success", Priority.MEDIUM, "customer_success", DAY,
            course_id=course_id,
            completion_date=event.payload.get("completion_date"),
        ),
        _item(
            event, now,
            "Upsell Opportunity - Course Completion",
            f"Identify upsell opportunities for {email} after course completion",
            "sales_opportunity", Priority.LOW, "sales", 3 * DAY,
            course_id=course_id,
        ),
    ]


def handle_user_behavior(event: Event, now: datetime) -> List[WorkItem]:
    snapshot = event.payload.as_context()
    snapshot["user_email"] = _email(event)
    descriptors = behavior.assign(snapshot)
    metadata = {
        "event_id": event.id,
        "trigger_event": event.type.value,
        "user_id": event.payload.get("user_id"),
        "user_email": snapshot["user_email"],
        "engagement_score": event.payload.get("engagement_score"),
        "conversion_likelihood": event.payload.get("conversion_likelihood"),
    }
    return [d.materialize(now, metadata) for d in descriptors]


HANDLERS: Dict[EventType, Handler] = {
    EventType.COURSE_ENROLLMENT: handle_course_enrollment,
    EventType.PURCHASE_COMPLETED: handle_purchase_completed,
    EventType.FORM_SUBMISSION: handle_form_submission,
    EventType.LEAD_CAPTURE: handle_lead_capture,
    EventType.USER_REGISTRATION: handle_user_registration,
    EventType.SUPPORT_REQUEST: handle_support_request,
    EventType.REFUND_REQUEST: handle_refund_request,
    EventType.COURSE_COMPLETION: handle_course_completion,
    EventType.USER_BEHAVIOR: handle_user_behavior,
}
