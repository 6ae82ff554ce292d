"""Tests for the bulk suggestion scorer."""

from datetime import datetime, timedelta

import pytest

from followthru.core.suggestions import (
    are_complementary_roles,
    calculate_introduction_value,
    calculate_professional_context_overlap,
    calculate_reactivation_score,
    create_bulk_actions,
    generate_goal_action_suggestions,
    generate_relationship_suggestions,
    is_similar_industry,
    plan_bulk_actions,
)
from followthru.models import (
    Contact,
    Goal,
    GoalTarget,
    NetworkRelationship,
    SkipReason,
    SuggestionType,
)

NOW = datetime(2026, 10, 17, 9, 0)


def _contact(contact_id, name=None, **kwargs):
    return Contact(id=contact_id, name=name or contact_id.title(), **kwargs)


class TestScoring:
    """Tests for the individual scoring functions."""

    def test_same_company_gets_only_role_bonus(self):
        ceo = _contact("a", title="CEO", company="Acme Corp")
        cto = _contact("b", title="CTO", company="Acme Corp")
        assert calculate_introduction_value(ceo, cto) == 25

    def test_related_companies_and_roles(self):
        ceo = _contact("a", title="CEO", company="Acme Robotics")
        cto = _contact("b", title="CTO", company="Acme Labs")
        assert calculate_introduction_value(ceo, cto) == 55

    def test_context_overlap_is_deterministic(self):
        a = {"industry": "Fintech", "skills": ["python", "ml"]}
        b = {"industry": "fintech", "skills": ["python"]}
        first = calculate_professional_context_overlap(a, b)
        assert first == pytest.approx(200 / 3)
        assert calculate_professional_context_overlap(a, b) == first

    def test_context_overlap_ignores_keys(self):
        assert calculate_professional_context_overlap({"industry": "x"}, {"industry": "y"}) == 0

    def test_context_overlap_missing(self):
        assert calculate_professional_context_overlap(None, {"a": "b"}) == 0
        assert calculate_professional_context_overlap({}, {}) == 0

    def test_industry_and_roles(self):
        assert is_similar_industry("Red Bottle", "blue-sky ventures") is False
        assert is_similar_industry("Acme & Sons", "Sons of Liberty") is True
        assert are_complementary_roles("VP Product", "Head of Engineering")
        assert not are_complementary_roles("CEO", "CEO")

    def test_reactivation_score(self):
        contact = _contact("a", title="Founder", professional_context={"x": "y"})
        assert calculate_reactivation_score(contact, 300) == pytest.approx(30)
        assert calculate_reactivation_score(_contact("b"), 1500) == 0


class TestRelationshipSuggestions:
    """Tests for introduction, strengthening and reactivation suggestions."""

    def test_introduction_for_unconnected_pair(self):
        contacts = [
            _contact("a", title="CEO", company="Acme Robotics",
                     professional_context={"industry": "robotics", "stage": "seed"}),
            _contact("b", title="CTO", company="Acme Labs",
                     professional_context={"industry": "robotics"}),
        ]

        suggestions = generate_relationship_suggestions(contacts, [], "u1", now=NOW)

        assert len(suggestions) == 1
        intro = suggestions[0]
        assert intro.id == "intro_a_b"
        assert intro.type == SuggestionType.INTRODUCTION
        assert intro.confidence == pytest.approx(70)
        assert intro.priority == "medium"
        assert intro.suggested_action.type == "create_introduction"
        assert intro.contacts == ["a", "b"]

    def test_connected_pair_is_not_introduced(self):
        contacts = [
            _contact("a", title="CEO", company="Acme Robotics"),
            _contact("b", title="CTO", company="Acme Labs"),
        ]
        rel = NetworkRelationship(
            id="r1", contact_a_id="b", contact_b_id="a",
            relationship_type="known_connection", strength="strong",
            created_at=NOW - timedelta(days=400),
        )
        assert generate_relationship_suggestions(contacts, [rel], "u1", now=NOW) == []

    def test_strengthening_recent_weak_connection(self):
        contacts = [_contact("a"), _contact("b", professional_context={"role": "investor"})]
        rel = NetworkRelationship(
            id="r1", contact_a_id="a", contact_b_id="b",
            relationship_type="known_connection", strength="weak",
            created_at=NOW - timedelta(days=10),
        )

        suggestions = generate_relationship_suggestions(contacts, [rel], "u1", now=NOW)

        assert [s.id for s in suggestions] == ["strengthen_r1"]
        assert suggestions[0].confidence == 85
        assert suggestions[0].priority == "high"
        assert suggestions[0].contacts == ["b"]

    def test_old_bare_connection_is_not_worth_strengthening(self):
        contacts = [_contact("a"), _contact("b")]
        rel = NetworkRelationship(
            id="r1", contact_a_id="a", contact_b_id="b",
            relationship_type="known_connection", strength="weak",
            created_at=NOW - timedelta(days=365),
        )
        assert generate_relationship_suggestions(contacts, [rel], "u1", now=NOW) == []

    def test_dormant_contact_reactivation(self):
        contact = _contact(
            "a",
            name="Ada",
            title="CFO",
            professional_context={"sector": "energy"},
            last_interaction=NOW - timedelta(days=200),
        )

        suggestions = generate_relationship_suggestions([contact], [], "u1", now=NOW)

        reactivate = suggestions[0]
        assert reactivate.id == "reactivate_a"
        assert reactivate.confidence == pytest.approx(100 - 200 / 3 + 30)
        assert reactivate.timing_opportunity.type == "follow_up_due"
        assert "6 months" in reactivate.description
        assert reactivate.suggested_action.data["type"] == "follow_up"

    def test_sorted_by_confidence(self):
        contacts = [
            _contact("a", title="CEO", company="Acme Robotics",
                     professional_context={"industry": "robotics"}),
            _contact("b", title="CTO", company="Acme Labs",
                     professional_context={"industry": "robotics"},
                     last_interaction=NOW - timedelta(days=200)),
        ]

        suggestions = generate_relationship_suggestions(contacts, [], "u1", now=NOW)

        confidences = [s.confidence for s in suggestions]
        assert len(suggestions) == 2
        assert confidences == sorted(confidences, reverse=True)


class TestGoalSuggestions:
    """Tests for goal-target suggestions."""

    def test_confidence_and_action_type_by_target_type(self):
        goal = Goal(id="g1", title="Series A")
        contacts = [_contact(f"c{i}", name=f"Person {i}") for i in range(4)]
        targets = [
            GoalTarget(id=f"t{i}", goal_id="g1", contact_id=f"c{i}", target_type=kind)
            for i, kind in enumerate(["introduction", "information", "opportunity", "exploration"])
        ]

        suggestions = generate_goal_action_suggestions([goal], targets, contacts, [])

        summary = [(s.id, s.confidence, s.suggested_action.data["type"]) for s in suggestions]
        assert summary == [
            ("goal_info_t1", 80, "ask"),
            ("goal_intro_t0", 75, "ask"),
            ("goal_opp_t2", 70, "pog"),
            ("goal_explore_t3", 65, "general"),
        ]
        assert suggestions[1].title == "Request introduction from Person 0"

    def test_inactive_goals_and_targets_are_ignored(self):
        contacts = [_contact("c1")]
        goals = [Goal(id="g1", title="Old", is_active=False), Goal(id="g2", title="New")]
        targets = [
            GoalTarget(id="t1", goal_id="g1", contact_id="c1", target_type="information"),
            GoalTarget(id="t2", goal_id="g2", contact_id="c1", target_type="information",
                       status="archived"),
            GoalTarget(id="t3", goal_id="g2", contact_id="missing", target_type="information"),
        ]
        assert generate_goal_action_suggestions(goals, targets, contacts, []) == []


class TestBulkActions:
    """Tests for turning selected suggestions into actions."""

    def _suggestions(self):
        contacts = [
            _contact("a", title="CEO", company="Acme Robotics",
                     professional_context={"industry": "robotics"}),
            _contact("b", title="CTO", company="Acme Labs",
                     professional_context={"industry": "robotics"},
                     last_interaction=NOW - timedelta(days=200)),
            _contact("c", title="Advisor", professional_context={"sector": "energy"},
                     last_interaction=NOW - timedelta(days=210)),
        ]
        return generate_relationship_suggestions(contacts, [], "u1", now=NOW)

    def test_mixed_selection_keeps_source_order(self):
        suggestions = self._suggestions()
        assert [s.id for s in suggestions] == ["intro_a_b", "reactivate_b", "reactivate_c"]

        actions = create_bulk_actions(suggestions, ["reactivate_c", "reactivate_b", "intro_a_b"])

        assert [a.id for a in actions] == ["bulk_reactivate_b", "bulk_reactivate_c"]
        action = actions[0]
        assert action.contact_id == "b"
        assert action.type == "follow_up"
        assert action.status.value == "pending"
        assert action.suggested_by == "ai"
        assert action.confidence_score == suggestions[1].confidence

    def test_plan_reports_unconvertible(self):
        plan = plan_bulk_actions(self._suggestions(), ["intro_a_b", "unknown"])

        assert plan.actions == []
        assert len(plan.skipped) == 1
        assert plan.skipped[0].key == "intro_a_b"
        assert plan.skipped[0].reason == SkipReason.NOT_CONVERTIBLE
        assert plan.skipped[0].detail == "create_introduction"
