"""Parsing of generation requests into typed trigger contexts."""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter, ValidationError

from followthru.errors import InvalidContextError
from followthru.models import TriggerContext, TriggerType

_adapter: TypeAdapter = TypeAdapter(TriggerContext)

# Wire field -> context field. Request bodies use camelCase.
_TOP_LEVEL = {
    "userId": "user_id",
    "goalId": "goal_id",
    "contactId": "contact_id",
    "triggerType": "trigger_type",
}

# Metadata keys lifted onto the typed context
_METADATA = {
    "skipMonthlyReview": "skip_monthly_review",
    "skipWeeklyCheck": "skip_weekly_check",
    "skipQuarterlyAudit": "skip_quarterly_audit",
    "artifactId": "artifact_id",
    "templateKey": "template_key",
    "variables": "variables",
}

# Fields each trigger type accepts besides user_id, trigger_type and metadata
_ALLOWED = {
    TriggerType.GOAL_HEALTH: {"goal_id", "skip_monthly_review"},
    TriggerType.RELATIONSHIP_DECAY: {"contact_id"},
    TriggerType.SCHEDULED: {"skip_weekly_check", "skip_quarterly_audit"},
    TriggerType.ARTIFACT_PROCESSING: {"artifact_id", "goal_id", "contact_id"},
    TriggerType.MANUAL: {"template_key", "goal_id", "contact_id", "variables"},
}


def parse_context(payload: dict[str, Any]) -> TriggerContext:
    """Build a typed trigger context from a request body.

    The body may be the context itself or wrap it as ``{"context": {...}}``.

    Raises:
        InvalidContextError: userId missing, unknown triggerType, or a field
            the trigger type requires is absent.
    """
    if not isinstance(payload, dict):
        raise InvalidContextError("Request body must be a JSON object")

    raw = payload.get("context", payload)
    if not isinstance(raw, dict):
        raise InvalidContextError("'context' must be a JSON object")

    fields: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "metadata":
            continue
        fields[_TOP_LEVEL.get(key, key)] = value

    if not fields.get("user_id"):
        raise InvalidContextError("userId is required")

    trigger = fields.get("trigger_type")
    try:
        trigger_type = TriggerType(trigger)
    except ValueError:
        valid = ", ".join(t.value for t in TriggerType)
        raise InvalidContextError(f"Unknown triggerType '{trigger}' (expected one of: {valid})") from None

    metadata = raw.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise InvalidContextError("metadata must be a JSON object")

    for key, value in metadata.items():
        target = _METADATA.get(key, key)
        if target in _ALLOWED[trigger_type] and target not in fields:
            fields[target] = value

    allowed = _ALLOWED[trigger_type] | {"user_id", "trigger_type"}
    context_fields = {k: v for k, v in fields.items() if k in allowed and v is not None}
    context_fields["trigger_type"] = trigger_type.value
    context_fields["metadata"] = metadata

    try:
        return _adapter.validate_python(context_fields)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'context'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidContextError(f"Invalid {trigger_type.value} context: {problems}") from e
