"""Trigger rules for the system action generator.

Each function takes already-loaded state plus ``now`` and decides which
templates should fire. Nothing here touches the store or the wall clock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from followthru.core.clock import (
    days_between,
    is_first_day_of_quarter,
    is_first_monday_of_month,
    is_monday,
)
from followthru.core.templates import due_date_for
from followthru.models import (
    ActionPriority,
    Artifact,
    GeneratedAction,
    GoalState,
    RelationshipHealth,
    TriggerType,
)

# Template keys
EMPTY_GOAL_BOOTSTRAP = "empty_goal_bootstrap"
CONTACT_DISCOVERY = "contact_discovery"
STALE_GOAL_REVIVAL = "stale_goal_revival"
MONTHLY_GOAL_REVIEW = "monthly_goal_review"
DORMANT_RECONNECTION = "dormant_reconnection"
RECIPROCITY_BALANCE_POG = "reciprocity_balance_pog"
RECIPROCITY_BALANCE_ASK = "reciprocity_balance_ask"
WEEKLY_GOAL_CHECK = "weekly_goal_check"
QUARTERLY_RELATIONSHIP_AUDIT = "quarterly_relationship_audit"

DEFAULT_TARGET_CONTACTS = 50
DISCOVERY_RATIO = 0.5
RECIPROCITY_THRESHOLD = 2


@dataclass
class RuleHit:
    """A rule that fired and wants an action rendered from a template."""

    template_key: str
    variables: dict[str, Any] = field(default_factory=dict)
    goal_id: str | None = None
    contact_id: str | None = None


def goal_health_rules(
    goal: GoalState,
    now: datetime,
    skip_monthly_review: bool = False,
    stale_days: int = 30,
) -> list[RuleHit]:
    """Rules for a single goal. The checks are independent and additive."""
    hits: list[RuleHit] = []
    base = {"goal_title": goal.title}
    target = goal.target_contacts or DEFAULT_TARGET_CONTACTS

    if goal.contact_count == 0:
        hits.append(RuleHit(EMPTY_GOAL_BOOTSTRAP, dict(base), goal_id=goal.id))
    elif goal.contact_count < target * DISCOVERY_RATIO:
        hits.append(RuleHit(
            CONTACT_DISCOVERY,
            {**base, "current_contacts": goal.contact_count, "target_contacts": target},
            goal_id=goal.id,
        ))

    if goal.last_action_at is None or _older_than(goal.last_action_at, now, stale_days):
        hits.append(RuleHit(
            STALE_GOAL_REVIVAL,
            {**base, "days_inactive": stale_days},
            goal_id=goal.id,
        ))

    if is_first_monday_of_month(now) and not skip_monthly_review:
        hits.append(RuleHit(MONTHLY_GOAL_REVIEW, dict(base), goal_id=goal.id))

    return hits


def relationship_decay_rules(
    health: RelationshipHealth,
    now: datetime,
    dormant_after_days: int = 90,
) -> list[RuleHit]:
    """Dormancy and reciprocity rules for one contact. Both may fire."""
    hits: list[RuleHit] = []
    contact_name = health.contact_name or "this contact"

    days_since: int | None = None
    if health.last_interaction_date is not None:
        days_since = days_between(health.last_interaction_date, now)

    dormant = health.relationship_strength == "dormant"
    if dormant or (days_since is not None and days_since > dormant_after_days):
        hits.append(RuleHit(
            DORMANT_RECONNECTION,
            {
                "contact_name": contact_name,
                "days_since": days_since if days_since is not None else "many",
            },
            contact_id=health.contact_id,
        ))

    balance = health.reciprocity_balance
    reciprocity_vars = {"contact_name": contact_name, "reciprocity_balance": balance}
    if balance < -RECIPROCITY_THRESHOLD:
        hits.append(RuleHit(RECIPROCITY_BALANCE_POG, reciprocity_vars, contact_id=health.contact_id))
    elif balance > RECIPROCITY_THRESHOLD:
        hits.append(RuleHit(RECIPROCITY_BALANCE_ASK, reciprocity_vars, contact_id=health.contact_id))

    return hits


def scheduled_rules(
    active_goals: list[GoalState],
    now: datetime,
    skip_weekly_check: bool = False,
    skip_quarterly_audit: bool = False,
    max_weekly_goals: int = 3,
) -> list[RuleHit]:
    """Calendar-driven rules across the user's active goals."""
    hits: list[RuleHit] = []

    if is_monday(now) and not skip_weekly_check:
        for goal in active_goals[:max_weekly_goals]:
            hits.append(RuleHit(WEEKLY_GOAL_CHECK, {"goal_title": goal.title}, goal_id=goal.id))

    if is_first_day_of_quarter(now) and not skip_quarterly_audit and active_goals:
        first = active_goals[0]
        hits.append(RuleHit(
            QUARTERLY_RELATIONSHIP_AUDIT,
            {"goal_title": first.title, "quarter": (now.month - 1) // 3 + 1, "year": now.year},
            goal_id=first.id,
        ))

    return hits


def artifact_follow_ups(
    artifact: Artifact,
    user_id: str,
    now: datetime,
    goal_id: str | None = None,
    contact_id: str | None = None,
) -> list[GeneratedAction]:
    """Turn an artifact's follow-up suggestions into actions.

    Only ``follow_up`` suggestions whose metadata names an ``action_type`` are
    used. These bypass the template system entirely.
    """
    actions: list[GeneratedAction] = []

    for suggestion in artifact.suggestions:
        if suggestion.suggestion_type != "follow_up":
            continue
        action_type = suggestion.metadata.get("action_type")
        if not action_type:
            continue

        priority = suggestion.priority or _suggested_priority(suggestion.metadata.get("priority"))
        title = suggestion.title or _first_line(suggestion.content) or f"Follow up on {artifact.type}"
        metadata = {"artifact_id": artifact.id, "suggestion_id": suggestion.id}
        if artifact.contact_id:
            metadata["artifact_contact_id"] = artifact.contact_id

        actions.append(GeneratedAction(
            user_id=user_id,
            goal_id=goal_id,
            contact_id=contact_id,
            artifact_id=artifact.id,
            action_type=action_type,
            title=title,
            description=suggestion.content,
            priority=priority,
            duration_minutes=_suggested_minutes(suggestion.metadata.get("estimated_duration_minutes")),
            due_date=due_date_for(priority, now),
            generation_trigger=TriggerType.ARTIFACT_PROCESSING.value,
            template_id=None,
            context_metadata=metadata,
            created_at=now,
        ))

    return actions


def _suggested_priority(value: Any) -> ActionPriority:
    """Priority named in free-form suggestion metadata, medium when unusable."""
    if value is None:
        return ActionPriority.MEDIUM
    try:
        return ActionPriority(str(value).lower())
    except ValueError:
        logger.warning(f"Unknown follow-up priority {value!r}, using medium")
        return ActionPriority.MEDIUM


def _suggested_minutes(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _older_than(when: datetime, now: datetime, days: int) -> bool:
    if (when.tzinfo is None) != (now.tzinfo is None):
        when = when.replace(tzinfo=None)
        now = now.replace(tzinfo=None)
    return now - when > timedelta(days=days)


def _first_line(text: str, limit: int = 80) -> str:
    line = (text or "").strip().splitlines()[0] if (text or "").strip() else ""
    return line[:limit]
