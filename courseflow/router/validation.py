"""Inbound event validation: field presence and types, checked before dispatch."""

from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from courseflow.errors import ValidationError
from courseflow.models.event import Event, EventType, payload_model_for

# Keys carried by the event envelope rather than the payload
ENVELOPE_KEYS = ("event_type", "timestamp")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _describe(error: dict, event_type: EventType) -> str:
    field = ".".join(str(part) for part in error["loc"]) or "payload"
    if error["type"] in ("missing", "blank"):
        return f"{field} is required for {event_type.value} events"
    return f"{field}: {error['msg']}"


def validate_event(
    event_type: Union[EventType, str, None],
    payload: Optional[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> Event:
    """
    Build a typed Event or raise ValidationError listing every problem found.
    A payload `timestamp`, when present, must be ISO 8601 and becomes the
    event timestamp; otherwise the event is stamped with `now`.
    """
    try:
        etype = EventType(event_type)
    except ValueError:
        raise ValidationError(str(event_type), [f"Invalid event type: {event_type}"]) from None

    data = dict(payload or {})
    errors: List[str] = []

    timestamp = now or datetime.utcnow()
    if data.get("timestamp") is not None:
        parsed = _parse_timestamp(data["timestamp"])
        if parsed is None:
            errors.append("timestamp must be a valid ISO 8601 date")
        else:
            timestamp = parsed

    body = {k: v for k, v in data.items() if k not in ENVELOPE_KEYS}
    model = payload_model_for(etype)
    typed = None
    try:
        typed = model.model_validate(body)
    except PydanticValidationError as e:
        errors.extend(_describe(err, etype) for err in e.errors())

    if errors:
        raise ValidationError(etype.value, errors)
    return Event(type=etype, payload=typed, timestamp=timestamp)
