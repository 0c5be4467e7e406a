"""Business events: one typed payload model per event type."""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Type, Union
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StrictStr
from pydantic_core import PydanticCustomError

from courseflow.models.decision import BehaviorPatterns, PageInteractions


_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class EventType(str, Enum):
    """The closed set of event types accepted by the router."""
    PAGE_VIEW = "page_view"
    USER_REGISTRATION = "user_registration"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    COURSE_ENROLLMENT = "course_enrollment"
    COURSE_PROGRESS = "course_progress"
    COURSE_COMPLETION = "course_completion"
    PURCHASE_INITIATED = "purchase_initiated"
    PURCHASE_COMPLETED = "purchase_completed"
    PURCHASE_FAILED = "purchase_failed"
    LEAD_CAPTURE = "lead_capture"
    FORM_SUBMISSION = "form_submission"
    CONTENT_DOWNLOAD = "content_download"
    EMAIL_SUBSCRIPTION = "email_subscription"
    COMMENT_POSTED = "comment_posted"
    SEARCH_PERFORMED = "search_performed"
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    CART_ABANDONED = "cart_abandoned"
    REFUND_PROCESSED = "refund_processed"
    SUPPORT_REQUEST = "support_request"
    REFUND_REQUEST = "refund_request"
    USER_BEHAVIOR = "user_behavior"


def _check_email(value: str) -> str:
    if not _EMAIL_PATTERN.match(value):
        raise ValueError("email must be a valid email address")
    return value


def _not_blank(value: Any) -> Any:
    # Empty and whitespace-only values count as missing.
    if value is None or (isinstance(value, str) and not value.strip()):
        raise PydanticCustomError("blank", "Field must not be empty")
    return value


NotBlank = BeforeValidator(_not_blank)

EmailAddress = Annotated[str, AfterValidator(_check_email)]
RequiredEmail = Annotated[str, NotBlank, AfterValidator(_check_email)]
RequiredStr = Annotated[str, NotBlank]
RequiredUserId = Annotated[StrictStr, NotBlank]
RequiredId = Annotated[Union[str, int], NotBlank]


class EventPayload(BaseModel):
    """
    Base payload. Fields beyond the required ones are kept as extras so
    handlers and templates can read them. `user_id` and `email` are
    type-checked on every event type when present.
    """
    model_config = ConfigDict(extra="allow")

    user_id: Optional[StrictStr] = None
    email: Optional[EmailAddress] = None

    def get(self, key: str, default=None):
        """Look up a declared or extra field by name."""
        if key in type(self).model_fields:
            value = getattr(self, key)
        else:
            value = (self.model_extra or {}).get(key)
        return default if value is None else value

    def as_context(self) -> dict:
        """Flat mapping used for template rendering and work item metadata. Unset fields are left out."""
        return self.model_dump(mode="json", exclude_none=True)


class PageViewPayload(EventPayload):
    page_url: RequiredStr
    session_id: RequiredStr


class UserRegistrationPayload(EventPayload):
    user_id: RequiredUserId
    email: RequiredEmail


class CourseEnrollmentPayload(EventPayload):
    user_id: RequiredUserId
    course_id: RequiredId


class PurchaseCompletedPayload(EventPayload):
    user_id: RequiredUserId
    order_id: RequiredId
    total: Annotated[float, NotBlank, Field(ge=0)]


class LeadCapturePayload(EventPayload):
    email: RequiredEmail
    lead_magnet_type: RequiredStr


class FormSubmissionPayload(EventPayload):
    form_id: RequiredId


class SearchPerformedPayload(EventPayload):
    search_query: RequiredStr


class UserBehaviorPayload(EventPayload):
    """Behavior snapshot fields. All optional; present ones must have the snapshot's shape."""

    user_email: Optional[str] = None
    engagement_score: Optional[float] = None
    conversion_likelihood: Optional[float] = None
    page_interactions: Optional[PageInteractions] = None
    behavior_patterns: Optional[BehaviorPatterns] = None


PAYLOAD_MODELS: Dict[EventType, Type[EventPayload]] = {
    EventType.PAGE_VIEW: PageViewPayload,
    EventType.USER_REGISTRATION: UserRegistrationPayload,
    EventType.COURSE_ENROLLMENT: CourseEnrollmentPayload,
    EventType.PURCHASE_COMPLETED: PurchaseCompletedPayload,
    EventType.LEAD_CAPTURE: LeadCapturePayload,
    EventType.FORM_SUBMISSION: FormSubmissionPayload,
    EventType.SEARCH_PERFORMED: SearchPerformedPayload,
    EventType.USER_BEHAVIOR: UserBehaviorPayload,
}


def payload_model_for(event_type: EventType) -> Type[EventPayload]:
    """Typed payload model for an event type (generic payload for the rest)."""
    return PAYLOAD_MODELS.get(event_type, EventPayload)


def required_fields(event_type: EventType) -> List[str]:
    """Fields that must be present before an event of this type is dispatched."""
    model = payload_model_for(event_type)
    return [name for name, info in model.model_fields.items() if info.is_required()]


class Event(BaseModel):
    """A validated business event, ready for dispatch."""

    id: str = Field(default_factory=lambda: f"evt_{uuid4().hex[:12]}")
    type: EventType
    payload: EventPayload
    timestamp: datetime
