"""Tests for event validation, template rendering and the Event Router."""

import asyncio
from datetime import datetime, timedelta

import pytest

from courseflow.errors import TemplateError, TriggerError, ValidationError
from courseflow.events.bus import WORK_ITEMS_CREATED, EventBus
from courseflow.models import EventType, Priority, TriggerConfig, WorkItemTemplate
from courseflow.router.router import EventRouter
from courseflow.router.templates import render_template
from courseflow.router.validation import validate_event
from courseflow.store.work_items import WorkItemStore

NOW = datetime(2024, 9, 2, 10, 0)


def _make_router(bus=None):
    store = WorkItemStore()
    return EventRouter(store, bus), store


def _make_trigger(name="congrats", title="Congrats {user_email}", **kwargs) -> TriggerConfig:
    return TriggerConfig(
        name=name,
        event_type=EventType.COURSE_COMPLETION,
        work_item_templates=[
            WorkItemTemplate(
                title_template=title,
                description_template=kwargs.get("description", "Completed {course_id}"),
                type="celebration",
                priority=Priority.LOW,
                assignee="community",
                due_offset_minutes=kwargs.get("offset", 60),
            )
        ],
    )


def _dispatch(router, event_type, payload):
    return asyncio.run(router.dispatch(event_type, payload, now=NOW))


class TestValidation:
    def test_missing_required_field(self):
        with pytest.raises(ValidationError) as exc:
            validate_event("purchase_completed", {"user_id": "u1", "order_id": 5})
        assert "total is required for purchase_completed events" in exc.value.errors

    def test_collects_every_error(self):
        with pytest.raises(ValidationError) as exc:
            validate_event("user_registration", {"user_id": 42, "email": "not-an-email"})
        assert len(exc.value.errors) == 2

    def test_unknown_event_type(self):
        with pytest.raises(ValidationError) as exc:
            validate_event("coffee_break", {})
        assert exc.value.errors == ["Invalid event type: coffee_break"]

    def test_numeric_string_total_accepted(self):
        event = validate_event("purchase_completed", {
            "user_id": "u1", "order_id": "A-1", "total": "199.00",
        })
        assert event.payload.total == 199.0

    def test_negative_total_rejected(self):
        with pytest.raises(ValidationError):
            validate_event("purchase_completed", {"user_id": "u1", "order_id": 1, "total": -5})

    def test_timestamp_must_be_iso(self):
        with pytest.raises(ValidationError) as exc:
            validate_event("session_start", {"timestamp": "yesterday"})
        assert exc.value.errors == ["timestamp must be a valid ISO 8601 date"]

        event = validate_event("session_start", {"timestamp": "2024-09-02T08:30:00Z"})
        assert event.timestamp.hour == 8

    def test_blank_required_fields_count_as_missing(self):
        with pytest.raises(ValidationError) as exc:
            validate_event("page_view", {"page_url": "", "session_id": "   "})
        assert exc.value.errors == [
            "page_url is required for page_view events",
            "session_id is required for page_view events",
        ]

    def test_blank_total_and_order_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_event("purchase_completed", {"user_id": "u1", "order_id": "", "total": None})
        assert set(exc.value.errors) == {
            "order_id is required for purchase_completed events",
            "total is required for purchase_completed events",
        }

    def test_user_id_and_email_checked_on_every_type(self):
        with pytest.raises(ValidationError) as exc:
            validate_event("cart_abandoned", {"user_id": 7, "email": "nope"})
        assert len(exc.value.errors) == 2

        event = validate_event("cart_abandoned", {"user_id": "u7", "email": "a@b.com"})
        assert event.payload.get("user_id") == "u7"

    def test_user_behavior_shape_checked(self):
        for payload in [
            {"user_id": 42, "engagement_score": 10},
            {"engagement_score": "high"},
            {"page_interactions": {"pricing_page_visits": "many"}},
        ]:
            with pytest.raises(ValidationError):
                validate_event("user_behavior", payload)

    def test_envelope_keys_stripped_from_payload(self):
        event = validate_event("cart_abandoned", {"event_type": "cart_abandoned", "cart_id": 3})
        assert event.type == EventType.CART_ABANDONED
        assert event.payload.as_context() == {"cart_id": 3}


class TestTemplates:
    def test_placeholders_replaced(self):
        assert render_template("Hi {name}, order {order}", {"name": "Ana", "order": 7}) == "Hi Ana, order 7"

    def test_missing_value_left_verbatim(self):
        assert render_template("Hi {name} {unknown}", {"name": "Ana", "unknown": None}) == "Hi Ana {unknown}"

    def test_unbalanced_braces(self):
        for template in ["Hi {name", "Hi name}", "{{name}}"]:
            with pytest.raises(TemplateError):
                render_template(template, {"name": "Ana"})


class TestFixedHandlers:
    def test_purchase_creates_three_items(self):
        router, store = _make_router()
        items = _dispatch(router, "purchase_completed", {
            "user_id": "u1", "order_id": 99, "total": 499, "user_email": "buyer@example.com",
        })
        assert [i.type for i in items] == [
            "customer_onboarding", "access_management", "email_marketing",
        ]
        assert items[1].due_at == NOW + timedelta(minutes=30)
        assert items[2].due_at == NOW + timedelta(days=7)
        assert store.count() == 3

    def test_purchase_without_total_creates_nothing(self):
        router, store = _make_router()
        with pytest.raises(ValidationError):
            _dispatch(router, "purchase_completed", {"user_id": "u1", "order_id": 99})
        assert store.count() == 0

    def test_lead_capture_high_score(self):
        router, _ = _make_router()
        items = _dispatch(router, "lead_capture", {
            "email": "lead@example.com",
            "lead_magnet_type": "consultation_booking",
            "source": "direct_traffic",
            "behavior": {"pages_visited": 5, "time_on_site": 300, "return_visits": 2},
        })
        qualification, follow_up = items
        assert qualification.priority == Priority.HIGH
        assert qualification.assignee == "senior_sales"
        assert qualification.metadata["lead_score"] == 100
        assert qualification.due_at == NOW + timedelta(hours=2)
        assert follow_up.assignee == "marketing_automation"

    def test_form_submission_by_type(self):
        router, _ = _make_router()
        contact = _dispatch(router, "form_submission", {"form_id": 1, "form_type": "contact"})
        assert contact[0].assignee == "support"
        magnet = _dispatch(router, "form_submission", {"form_id": 2, "form_type": "lead_magnet"})
        assert magnet[0].assignee == "marketing"
        assert _dispatch(router, "form_submission", {"form_id": 3, "form_type": "survey"}) == []

    def test_support_request_with_escalation(self):
        router, _ = _make_router()
        ticket, escalation = _dispatch(router, "support_request", {
            "customer_tier": "premium",
            "action_type": "technical_issue",
            "user_email": "vip@example.com",
        })
        assert ticket.assignee == "technical_support"
        assert escalation.type == "escalation_review"
        assert escalation.metadata["original_ticket_id"] == ticket.id

    def test_refund_request(self):
        router, _ = _make_router()
        items = _dispatch(router, "refund_request", {"order_id": 5, "customer_tier": "basic"})
        assert [i.assignee for i in items] == ["finance"]

    def test_user_behavior(self):
        router, _ = _make_router()
        items = _dispatch(router, "user_behavior", {
            "user_email": "visitor@example.com",
            "engagement_score": 20,
            "behavior_patterns": {"email_opens": 0},
        })
        assert [i.type for i in items] == ["reengagement"]

    def test_user_behavior_minimal_payload(self):
        router, store = _make_router()
        items = _dispatch(router, "user_behavior", {"engagement_score": 10})
        assert [i.type for i in items] == ["reengagement"]
        assert items[0].metadata["user_email"] == "unknown"
        assert store.count() == 1

    def test_support_request_with_odd_context(self):
        router, _ = _make_router()
        ticket, = _dispatch(router, "support_request", {
            "customer_tier": "standard",
            "priority_indicators": 5,
            "course_enrollments": 6,
        })
        assert ticket.metadata["followup_time_minutes"] == 1440

    def test_lead_capture_with_list_source(self):
        router, _ = _make_router()
        qualification, _ = _dispatch(router, "lead_capture", {
            "email": "lead@example.com",
            "lead_magnet_type": "pmp_guide",
            "source": ["organic_search"],
        })
        assert qualification.metadata["lead_score"] == 55

    def test_event_without_handler(self):
        router, _ = _make_router()
        assert _dispatch(router, "page_view", {"page_url": "/", "session_id": "s1"}) == []


class TestTriggers:
    def test_congrats_trigger(self):
        router, _ = _make_router()
        router.register_trigger("course_completion", _make_trigger())
        items = _dispatch(router, "course_completion", {"user_email": "a@b.com"})

        congrats = [i for i in items if i.metadata.get("trigger_name") == "congrats"]
        assert len(congrats) == 1
        assert congrats[0].title == "Congrats a@b.com"
        assert congrats[0].description == "Completed {course_id}"
        assert congrats[0].metadata["user_email"] == "a@b.com"
        assert congrats[0].due_at == NOW + timedelta(minutes=60)

    def test_triggers_run_after_fixed_handler_in_order(self):
        router, _ = _make_router()
        router.register_trigger("course_completion", _make_trigger(name="first"))
        router.register_trigger("course_completion", _make_trigger(name="second"))
        items = _dispatch(router, "course_completion", {"user_email": "a@b.com"})

        assert len(items) == 4
        assert [i.metadata.get("trigger_name") for i in items] == [None, None, "first", "second"]

    def test_failing_trigger_aborts_remaining(self):
        router, store = _make_router()
        router.register_trigger("course_completion", _make_trigger(name="ok"))
        router.register_trigger("course_completion", _make_trigger(name="broken", title="Hi {user_email"))
        router.register_trigger("course_completion", _make_trigger(name="never"))

        with pytest.raises(TriggerError) as exc:
            _dispatch(router, "course_completion", {"user_email": "a@b.com"})

        assert exc.value.trigger_name == "broken"
        names = [i.metadata.get("trigger_name") for i in store.list()]
        assert "ok" in names
        assert "never" not in names
        assert len(names) == 3

    def test_register_accepts_mapping(self):
        router, _ = _make_router()
        trigger = router.register_trigger("lead_capture", {
            "name": "notify",
            "work_item_templates": [
                {"title_template": "New lead {email}", "type": "notify", "assignee": "ops"}
            ],
        })
        assert trigger.event_type == EventType.LEAD_CAPTURE
        assert router.triggers("lead_capture") == [trigger]
        assert router.triggers() == [trigger]

    def test_created_items_published(self):
        bus = EventBus()
        received = []
        bus.subscribe(WORK_ITEMS_CREATED, received.append)
        router, _ = _make_router(bus)
        _dispatch(router, "user_registration", {"user_id": "u1", "email": "new@example.com"})

        assert len(received) == 1
        assert received[0]["event_type"] == "user_registration"
        assert len(received[0]["items"]) == 1
