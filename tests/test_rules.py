"""Tests for the trigger rules."""

from datetime import datetime, timedelta

import pytest

from followthru.core.rules import (
    CONTACT_DISCOVERY,
    DORMANT_RECONNECTION,
    EMPTY_GOAL_BOOTSTRAP,
    MONTHLY_GOAL_REVIEW,
    QUARTERLY_RELATIONSHIP_AUDIT,
    RECIPROCITY_BALANCE_ASK,
    RECIPROCITY_BALANCE_POG,
    STALE_GOAL_REVIVAL,
    WEEKLY_GOAL_CHECK,
    artifact_follow_ups,
    goal_health_rules,
    relationship_decay_rules,
    scheduled_rules,
)
from followthru.models import (
    ActionPriority,
    Artifact,
    ArtifactSuggestion,
    GoalState,
    RelationshipHealth,
)

SATURDAY = datetime(2026, 10, 17, 9, 0)
FIRST_MONDAY = datetime(2026, 10, 5, 9, 0)


def _goal(**kwargs) -> GoalState:
    defaults = dict(id="g1", user_id="u1", title="Raise a seed round", target_contacts=10)
    defaults.update(kwargs)
    return GoalState(**defaults)


def _health(**kwargs) -> RelationshipHealth:
    defaults = dict(user_id="u1", contact_id="c1", contact_name="Ada")
    defaults.update(kwargs)
    return RelationshipHealth(**defaults)


def _keys(hits):
    return [h.template_key for h in hits]


class TestGoalHealthRules:
    """Tests for the goal health rules."""

    def test_discovery_and_stale(self):
        goal = _goal(contact_count=3, last_action_at=SATURDAY - timedelta(days=40))
        hits = goal_health_rules(goal, SATURDAY)

        assert _keys(hits) == [CONTACT_DISCOVERY, STALE_GOAL_REVIVAL]
        assert hits[0].variables == {
            "goal_title": "Raise a seed round",
            "current_contacts": 3,
            "target_contacts": 10,
        }
        assert all(h.goal_id == "g1" for h in hits)

    def test_empty_goal_bootstraps_instead_of_discovery(self):
        goal = _goal(contact_count=0, last_action_at=SATURDAY)
        assert _keys(goal_health_rules(goal, SATURDAY)) == [EMPTY_GOAL_BOOTSTRAP]

    def test_goal_without_actions_is_stale(self):
        goal = _goal(contact_count=8, last_action_at=None)
        assert _keys(goal_health_rules(goal, SATURDAY)) == [STALE_GOAL_REVIVAL]

    def test_default_target_when_unset(self):
        """Without a target the discovery threshold is half of 50."""
        recent = SATURDAY - timedelta(days=1)
        assert _keys(goal_health_rules(
            _goal(target_contacts=None, contact_count=24, last_action_at=recent), SATURDAY
        )) == [CONTACT_DISCOVERY]
        assert goal_health_rules(
            _goal(target_contacts=None, contact_count=25, last_action_at=recent), SATURDAY
        ) == []

    def test_monthly_review_on_first_monday(self):
        goal = _goal(contact_count=8, last_action_at=FIRST_MONDAY - timedelta(days=1))
        assert _keys(goal_health_rules(goal, FIRST_MONDAY)) == [MONTHLY_GOAL_REVIEW]
        assert goal_health_rules(goal, FIRST_MONDAY, skip_monthly_review=True) == []


class TestRelationshipDecayRules:
    """Tests for the dormancy and reciprocity rules."""

    @pytest.mark.parametrize("balance", [-2, 0, 2])
    def test_balanced_reciprocity_emits_nothing(self, balance):
        health = _health(
            reciprocity_balance=balance,
            last_interaction_date=SATURDAY - timedelta(days=10),
        )
        assert relationship_decay_rules(health, SATURDAY) == []

    def test_reciprocity_direction(self):
        assert _keys(relationship_decay_rules(_health(reciprocity_balance=-2.5), SATURDAY)) == [
            RECIPROCITY_BALANCE_POG
        ]
        assert _keys(relationship_decay_rules(_health(reciprocity_balance=3), SATURDAY)) == [
            RECIPROCITY_BALANCE_ASK
        ]

    def test_dormant_after_ninety_days(self):
        at_ninety = _health(last_interaction_date=SATURDAY - timedelta(days=90))
        assert relationship_decay_rules(at_ninety, SATURDAY) == []

        hits = relationship_decay_rules(
            _health(last_interaction_date=SATURDAY - timedelta(days=120)), SATURDAY
        )
        assert _keys(hits) == [DORMANT_RECONNECTION]
        assert hits[0].variables["days_since"] == 120
        assert hits[0].contact_id == "c1"

    def test_dormant_strength_without_date(self):
        hits = relationship_decay_rules(_health(relationship_strength="dormant"), SATURDAY)
        assert hits[0].variables == {"contact_name": "Ada", "days_since": "many"}

    def test_dormant_and_reciprocity_both_fire(self):
        health = _health(relationship_strength="dormant", reciprocity_balance=-5)
        assert _keys(relationship_decay_rules(health, SATURDAY)) == [
            DORMANT_RECONNECTION,
            RECIPROCITY_BALANCE_POG,
        ]


class TestScheduledRules:
    """Tests for the calendar-driven rules."""

    def _goals(self, n):
        return [_goal(id=f"g{i}", title=f"Goal {i}") for i in range(1, n + 1)]

    def test_weekly_check_caps_at_three_goals(self):
        hits = scheduled_rules(self._goals(5), datetime(2026, 10, 12))
        assert _keys(hits) == [WEEKLY_GOAL_CHECK] * 3
        assert [h.goal_id for h in hits] == ["g1", "g2", "g3"]

    def test_nothing_on_a_plain_saturday(self):
        assert scheduled_rules(self._goals(2), SATURDAY) == []

    def test_quarterly_audit_on_first_goal(self):
        hits = scheduled_rules(self._goals(2), datetime(2026, 10, 1))
        assert _keys(hits) == [QUARTERLY_RELATIONSHIP_AUDIT]
        assert hits[0].variables == {"goal_title": "Goal 1", "quarter": 4, "year": 2026}

    def test_quarter_day_without_goals(self):
        assert scheduled_rules([], datetime(2026, 10, 1)) == []

    def test_skip_flags(self):
        monday_quarter = datetime(2024, 7, 1)
        assert len(scheduled_rules(self._goals(1), monday_quarter)) == 2
        assert scheduled_rules(
            self._goals(1), monday_quarter, skip_weekly_check=True, skip_quarterly_audit=True
        ) == []


class TestArtifactFollowUps:
    """Tests for artifact follow-up extraction."""

    def test_only_follow_ups_with_action_type(self):
        artifact = Artifact(
            id="a1",
            user_id="u1",
            contact_id="c9",
            type="voice_memo",
            suggestions=[
                ArtifactSuggestion(
                    id="s1",
                    artifact_id="a1",
                    suggestion_type="follow_up",
                    content="Send the deck to Ada\nShe asked twice",
                    priority=ActionPriority.HIGH,
                    metadata={"action_type": "send_materials"},
                ),
                ArtifactSuggestion(
                    id="s2", artifact_id="a1", suggestion_type="follow_up", content="Maybe call"
                ),
                ArtifactSuggestion(
                    id="s3",
                    artifact_id="a1",
                    suggestion_type="insight",
                    content="Ada likes sailing",
                    metadata={"action_type": "note"},
                ),
            ],
        )

        actions = artifact_follow_ups(artifact, "u1", SATURDAY, goal_id="g1")

        assert len(actions) == 1
        action = actions[0]
        assert action.title == "Send the deck to Ada"
        assert action.template_id is None
        assert action.generation_trigger == "artifact_processing"
        assert action.contact_id is None
        assert action.goal_id == "g1"
        assert action.due_date == SATURDAY + timedelta(days=3)
        assert action.context_metadata == {
            "artifact_id": "a1",
            "suggestion_id": "s1",
            "artifact_contact_id": "c9",
        }

    def test_contact_comes_from_context(self):
        artifact = Artifact(
            id="a1",
            user_id="u1",
            contact_id="c9",
            suggestions=[ArtifactSuggestion(
                id="s1",
                artifact_id="a1",
                suggestion_type="follow_up",
                content="Call back",
                metadata={"action_type": "call"},
            )],
        )

        actions = artifact_follow_ups(artifact, "u1", SATURDAY, contact_id="c1")

        assert actions[0].contact_id == "c1"

    def test_unknown_priority_falls_back_to_medium(self):
        artifact = Artifact(
            id="a1",
            user_id="u1",
            suggestions=[
                ArtifactSuggestion(
                    id="s1",
                    artifact_id="a1",
                    suggestion_type="follow_up",
                    content="Send notes",
                    metadata={"action_type": "send_materials", "priority": "normal"},
                ),
                ArtifactSuggestion(
                    id="s2",
                    artifact_id="a1",
                    suggestion_type="follow_up",
                    content="Book a call",
                    metadata={
                        "action_type": "schedule",
                        "priority": "HIGH",
                        "estimated_duration_minutes": "a few",
                    },
                ),
            ],
        )

        actions = artifact_follow_ups(artifact, "u1", SATURDAY)

        assert [a.priority for a in actions] == [ActionPriority.MEDIUM, ActionPriority.HIGH]
        assert actions[0].due_date == SATURDAY + timedelta(days=7)
        assert actions[1].duration_minutes is None
