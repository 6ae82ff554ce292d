"""Tests for request parsing into trigger contexts."""

import pytest

from followthru.core.context import parse_context
from followthru.errors import InvalidContextError
from followthru.models import (
    ArtifactProcessingContext,
    GoalHealthContext,
    ManualContext,
    RelationshipDecayContext,
    ScheduledContext,
)


class TestParseContext:
    """Tests for parse_context."""

    def test_flat_camel_case_body(self):
        context = parse_context({"userId": "u1", "goalId": "g1", "triggerType": "goal_health"})
        assert isinstance(context, GoalHealthContext)
        assert context.goal_id == "g1"
        assert context.skip_monthly_review is False

    def test_wrapped_body(self):
        context = parse_context({
            "context": {"userId": "u1", "contactId": "c1", "triggerType": "relationship_decay"}
        })
        assert isinstance(context, RelationshipDecayContext)
        assert context.contact_id == "c1"

    def test_metadata_flags_are_lifted(self):
        context = parse_context({
            "userId": "u1",
            "triggerType": "scheduled",
            "metadata": {"skipWeeklyCheck": True, "source": "cron"},
        })
        assert isinstance(context, ScheduledContext)
        assert context.skip_weekly_check is True
        assert context.skip_quarterly_audit is False
        assert context.metadata == {"skipWeeklyCheck": True, "source": "cron"}

    def test_artifact_id_from_metadata(self):
        context = parse_context({
            "userId": "u1",
            "triggerType": "artifact_processing",
            "contactId": "c1",
            "metadata": {"artifactId": "a1"},
        })
        assert isinstance(context, ArtifactProcessingContext)
        assert context.artifact_id == "a1"
        assert context.contact_id == "c1"

    def test_manual_template_and_variables(self):
        context = parse_context({
            "userId": "u1",
            "triggerType": "manual",
            "metadata": {"templateKey": "weekly_goal_check", "variables": {"goal_title": "X"}},
        })
        assert isinstance(context, ManualContext)
        assert context.template_key == "weekly_goal_check"
        assert context.variables == {"goal_title": "X"}

    def test_fields_of_other_triggers_are_dropped(self):
        context = parse_context({
            "userId": "u1",
            "triggerType": "scheduled",
            "goalId": "g1",
            "contactId": "c1",
        })
        assert not hasattr(context, "goal_id")

    @pytest.mark.parametrize("payload,message", [
        ({"triggerType": "goal_health", "goalId": "g1"}, "userId is required"),
        ({"userId": "", "triggerType": "scheduled"}, "userId is required"),
        ({"userId": "u1", "triggerType": "weekly"}, "Unknown triggerType"),
        ({"userId": "u1"}, "Unknown triggerType"),
        ({"userId": "u1", "triggerType": "goal_health"}, "goal_id"),
        ({"userId": "u1", "triggerType": "relationship_decay"}, "contact_id"),
        ({"userId": "u1", "triggerType": "artifact_processing"}, "artifact_id"),
        ({"userId": "u1", "triggerType": "manual"}, "template_key"),
    ])
    def test_invalid_contexts(self, payload, message):
        with pytest.raises(InvalidContextError, match=message):
            parse_context(payload)

    def test_blank_user_id(self):
        with pytest.raises(InvalidContextError):
            parse_context({"userId": "   ", "triggerType": "scheduled"})

    def test_non_object_body(self):
        with pytest.raises(InvalidContextError):
            parse_context(["not", "an", "object"])
