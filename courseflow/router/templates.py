"""`{field}` placeholder interpolation for trigger work item templates."""

import re
from typing import Any, Mapping, Union

from courseflow.errors import TemplateError
from courseflow.models.event import EventPayload

PLACEHOLDER = re.compile(r"\{(\w+)\}")


def check_braces(template: str, trigger_name: str = "template") -> None:
    """Raise TemplateError on a nested, unopened or unclosed brace."""
    depth = 0
    for position, char in enumerate(template):
        if char == "{":
            depth += 1
            if depth > 1:
                raise TemplateError(trigger_name, f"nested '{{' at position {position}")
        elif char == "}":
            depth -= 1
            if depth < 0:
                raise TemplateError(trigger_name, f"unmatched '}}' at position {position}")
    if depth:
        raise TemplateError(trigger_name, f"unclosed '{{' in template {template!r}")


def render_template(
    template: str,
    context: Union[EventPayload, Mapping[str, Any]],
    trigger_name: str = "template",
) -> str:
    """
    Replace each `{field}` with the matching payload value. Placeholders with
    no value (absent or null) are left verbatim.
    """
    check_braces(template, trigger_name)
    if isinstance(context, EventPayload):
        context = context.as_context()

    def _substitute(match: re.Match) -> str:
        value = context.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER.sub(_substitute, template)
