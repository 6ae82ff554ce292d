"""Followthru core components."""

from followthru.core.clock import Clock, FixedClock
from followthru.core.context import parse_context
from followthru.core.generator import SystemActionGenerator
from followthru.core.suggestions import (
    create_bulk_actions,
    generate_goal_action_suggestions,
    generate_relationship_suggestions,
    plan_bulk_actions,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemActionGenerator",
    "create_bulk_actions",
    "generate_goal_action_suggestions",
    "generate_relationship_suggestions",
    "parse_context",
    "plan_bulk_actions",
]
