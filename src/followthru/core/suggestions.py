"""Bulk relationship and goal suggestions.

Scores introduction, strengthening, reactivation and goal-target
opportunities over a contact graph that the caller has already loaded, and
turns a selection of suggestions into actions. Everything here is pure: no
store access, and "now" is a parameter.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable

from followthru.core.clock import days_between
from followthru.models import (
    BulkAction,
    BulkPlan,
    BulkSuggestion,
    Contact,
    Goal,
    GoalTarget,
    NetworkRelationship,
    SkippedRule,
    SkipReason,
    SuggestedAction,
    SuggestionType,
    TimingOpportunity,
)

INTRODUCTION_THRESHOLD = 60
INTRODUCTION_HIGH = 80
STRENGTHENING_THRESHOLD = 50
STRENGTHENING_HIGH = 75
REACTIVATION_THRESHOLD = 40
REACTIVATION_HIGH = 70
DORMANT_AFTER_DAYS = 6 * 30
RECENT_RELATIONSHIP_DAYS = 90

SAME_INDUSTRY_BONUS = 30
COMPLEMENTARY_ROLE_BONUS = 25
CONTEXT_OVERLAP_WEIGHT = 0.3

COMPLEMENTARY_ROLES: list[tuple[str, str]] = [
    ("ceo", "cto"), ("ceo", "cfo"), ("ceo", "cmo"),
    ("founder", "investor"), ("founder", "advisor"),
    ("sales", "marketing"), ("product", "engineering"),
    ("design", "engineering"), ("hr", "operations"),
]

STRENGTHENING_STEPS = [
    "Send a thoughtful follow-up message",
    "Share relevant industry insights",
    "Make a strategic introduction",
    "Invite to relevant event or meeting",
]

# target_type -> (id prefix, confidence, action type, title, description, action title, reasoning)
GOAL_TARGET_PLAYBOOK: dict[str, tuple[str, int, str, str, str, str, str]] = {
    "introduction": (
        "goal_intro", 75, "ask",
        "Request introduction from {contact}",
        "Leverage {contact}'s network for {goal}",
        "Introduction request - {goal}",
        "{contact} is well-positioned to make strategic introductions for {goal}",
    ),
    "information": (
        "goal_info", 80, "ask",
        "Gather insights from {contact}",
        "Leverage {contact}'s expertise for {goal}",
        "Insight gathering - {goal}",
        "{contact}'s experience is valuable for achieving {goal}",
    ),
    "opportunity": (
        "goal_opp", 70, "pog",
        "Explore opportunities with {contact}",
        "Discuss potential collaboration for {goal}",
        "Opportunity exploration - {goal}",
        "{contact} represents a strategic opportunity for {goal}",
    ),
    "exploration": (
        "goal_explore", 65, "general",
        "Build relationship with {contact}",
        "Strengthen connection for future {goal} opportunities",
        "Relationship building - {goal}",
        "Building a stronger relationship with {contact} supports {goal}",
    ),
}

_COMPANY_SPLIT = re.compile(r"[\s&-]+")


# ============================================================================
# Entry points
# ============================================================================


def generate_relationship_suggestions(
    contacts: list[Contact],
    relationships: list[NetworkRelationship],
    current_user_id: str,
    now: datetime | None = None,
) -> list[BulkSuggestion]:
    """Introduction, strengthening and reactivation suggestions, best first."""
    now = now or datetime.now()
    suggestions: list[BulkSuggestion] = []
    suggestions.extend(find_mutual_connection_opportunities(contacts, relationships, current_user_id))
    suggestions.extend(find_relationship_strengthening_opportunities(contacts, relationships, now))
    suggestions.extend(find_dormant_relationship_opportunities(contacts, now))
    return _by_confidence(suggestions)


def generate_goal_action_suggestions(
    goals: list[Goal],
    goal_targets: list[GoalTarget],
    contacts: list[Contact],
    relationships: list[NetworkRelationship],
) -> list[BulkSuggestion]:
    """One suggestion per active target of every active goal, best first."""
    contacts_by_id = {c.id: c for c in contacts}
    suggestions: list[BulkSuggestion] = []

    for goal in goals:
        if not goal.is_active:
            continue
        for target in goal_targets:
            if target.goal_id != goal.id or target.status != "active":
                continue
            contact = contacts_by_id.get(target.contact_id)
            if contact is None:
                continue
            suggestions.extend(generate_target_specific_actions(goal, target, contact, relationships))

    return _by_confidence(suggestions)


# ============================================================================
# Suggestion finders
# ============================================================================


def find_mutual_connection_opportunities(
    contacts: list[Contact],
    relationships: list[NetworkRelationship],
    current_user_id: str,
) -> list[BulkSuggestion]:
    """Pairs of contacts who don't know each other but probably should."""
    connections = build_connection_map(relationships)
    suggestions: list[BulkSuggestion] = []

    for i, contact_a in enumerate(contacts):
        for contact_b in contacts[i + 1:]:
            if contact_b.id in connections.get(contact_a.id, ()):
                continue

            score = calculate_introduction_value(contact_a, contact_b)
            if score <= INTRODUCTION_THRESHOLD:
                continue

            suggestions.append(BulkSuggestion(
                id=f"intro_{contact_a.id}_{contact_b.id}",
                type=SuggestionType.INTRODUCTION,
                title=f"Introduce {contact_a.name} to {contact_b.name}",
                description="Consider introducing these contacts based on mutual professional interests",
                confidence=score,
                priority="high" if score > INTRODUCTION_HIGH else "medium",
                contacts=[contact_a.id, contact_b.id],
                suggested_action=SuggestedAction(
                    type="create_introduction",
                    data={
                        "contactAId": contact_a.id,
                        "contactBId": contact_b.id,
                        "reason": (
                            f"Both {contact_a.name} and {contact_b.name} work in related fields "
                            "and could benefit from knowing each other."
                        ),
                    },
                ),
                reasoning="Professional alignment and complementary expertise suggest high mutual value",
            ))

    return suggestions


def find_relationship_strengthening_opportunities(
    contacts: list[Contact],
    relationships: list[NetworkRelationship],
    now: datetime,
) -> list[BulkSuggestion]:
    """Weak known connections worth deepening."""
    contacts_by_id = {c.id: c for c in contacts}
    suggestions: list[BulkSuggestion] = []

    for relationship in relationships:
        if relationship.strength != "weak" or relationship.relationship_type != "known_connection":
            continue

        contact_a = contacts_by_id.get(relationship.contact_a_id)
        contact_b = contacts_by_id.get(relationship.contact_b_id)
        if contact_a is None or contact_b is None:
            continue

        score = calculate_strengthening_opportunity(contact_a, contact_b, relationship, now)
        if score <= STRENGTHENING_THRESHOLD:
            continue

        suggestions.append(BulkSuggestion(
            id=f"strengthen_{relationship.id}",
            type=SuggestionType.RELATIONSHIP,
            title=f"Strengthen relationship with {contact_b.name}",
            description="Opportunity to deepen this relationship through targeted engagement",
            confidence=score,
            priority="high" if score > STRENGTHENING_HIGH else "medium",
            contacts=[contact_b.id],
            suggested_action=SuggestedAction(
                type="strengthen_relationship",
                data={
                    "relationshipId": relationship.id,
                    "suggestedActions": list(STRENGTHENING_STEPS),
                },
            ),
            reasoning="Recent connection with high potential for professional collaboration",
        ))

    return suggestions


def find_dormant_relationship_opportunities(
    contacts: list[Contact],
    now: datetime,
) -> list[BulkSuggestion]:
    """Contacts silent for more than six months who are worth reactivating."""
    suggestions: list[BulkSuggestion] = []

    for contact in contacts:
        if contact.last_interaction is None:
            continue
        days_since = days_between(contact.last_interaction, now)
        if days_since <= DORMANT_AFTER_DAYS:
            continue

        score = calculate_reactivation_score(contact, days_since)
        if score <= REACTIVATION_THRESHOLD:
            continue

        months = days_since // 30
        priority = "high" if score > REACTIVATION_HIGH else "medium"
        suggestions.append(BulkSuggestion(
            id=f"reactivate_{contact.id}",
            type=SuggestionType.ACTION,
            title=f"Reconnect with {contact.name}",
            description=f"Reactivate this relationship after {months} months of inactivity",
            confidence=score,
            priority=priority,
            contacts=[contact.id],
            suggested_action=SuggestedAction(
                type="create_action",
                data={
                    "type": "follow_up",
                    "title": f"Reconnect with {contact.name}",
                    "description": (
                        f"Reach out to {contact.name} after {months} months to reconnect and share updates"
                    ),
                },
            ),
            reasoning=f"Strong relationship dormant for {months} months",
            timing_opportunity=TimingOpportunity(
                type="follow_up_due",
                description=f"Last interaction {days_since} days ago",
                urgency=priority,
            ),
        ))

    return suggestions


def generate_target_specific_actions(
    goal: Goal,
    target: GoalTarget,
    contact: Contact,
    relationships: list[NetworkRelationship],
) -> list[BulkSuggestion]:
    """The suggestion for one goal target, shaped by its target_type."""
    playbook = GOAL_TARGET_PLAYBOOK.get(target.target_type)
    if playbook is None:
        return []

    prefix, confidence, action_type, title, description, action_title, reasoning = playbook
    names = {"contact": contact.name, "goal": goal.title}

    return [BulkSuggestion(
        id=f"{prefix}_{target.id}",
        type=SuggestionType.ACTION,
        title=title.format(**names),
        description=description.format(**names),
        confidence=confidence,
        priority=target.priority,
        contacts=[contact.id],
        suggested_action=SuggestedAction(
            type="create_action",
            data={
                "type": action_type,
                "title": action_title.format(**names),
                "description": target.target_description,
            },
        ),
        reasoning=reasoning.format(**names),
    )]


# ============================================================================
# Scoring
# ============================================================================


def build_connection_map(relationships: Iterable[NetworkRelationship]) -> dict[str, set[str]]:
    """Undirected adjacency of contacts that already know each other."""
    connections: dict[str, set[str]] = {}
    for rel in relationships:
        connections.setdefault(rel.contact_a_id, set()).add(rel.contact_b_id)
        connections.setdefault(rel.contact_b_id, set()).add(rel.contact_a_id)
    return connections


def calculate_introduction_value(contact_a: Contact, contact_b: Contact) -> float:
    """Value (0-100) of introducing two contacts.

    +30 for different companies in the same industry, +25 for complementary
    roles, plus 30% of their professional-context overlap.
    """
    score = 0.0

    if contact_a.company and contact_b.company:
        if contact_a.company != contact_b.company and is_similar_industry(
            contact_a.company, contact_b.company
        ):
            score += SAME_INDUSTRY_BONUS

    if contact_a.title and contact_b.title:
        if are_complementary_roles(contact_a.title, contact_b.title):
            score += COMPLEMENTARY_ROLE_BONUS

    overlap = calculate_professional_context_overlap(
        contact_a.professional_context,
        contact_b.professional_context,
    )
    score += overlap * CONTEXT_OVERLAP_WEIGHT

    return min(score, 100.0)


def calculate_strengthening_opportunity(
    contact_a: Contact,
    contact_b: Contact,
    relationship: NetworkRelationship,
    now: datetime,
) -> float:
    score = 50.0

    if days_between(relationship.created_at, now) < RECENT_RELATIONSHIP_DAYS:
        score += 20

    if contact_b.professional_context:
        score += 15

    return min(score, 100.0)


def calculate_reactivation_score(contact: Contact, days_since_last_interaction: int) -> float:
    """100, minus 10 per month of silence, plus bonuses for what we know."""
    score = 100 - (days_since_last_interaction / 30 * 10)

    if contact.professional_context:
        score += 20

    if contact.title or contact.company:
        score += 10

    return max(0.0, min(score, 100.0))


def calculate_professional_context_overlap(
    context_a: dict[str, Any] | None,
    context_b: dict[str, Any] | None,
) -> float:
    """Jaccard similarity (0-100) of the tags in two professional contexts.

    Tags are the lower-cased string values and list items found anywhere in
    the payload; keys are ignored.
    """
    if not context_a or not context_b:
        return 0.0

    tags_a = set(_context_tags(context_a))
    tags_b = set(_context_tags(context_b))
    union = tags_a | tags_b
    if not union:
        return 0.0

    return len(tags_a & tags_b) / len(union) * 100


def is_similar_industry(company_a: str, company_b: str) -> bool:
    """Crude industry match: the company names share a word."""
    keywords_a = {k for k in _COMPANY_SPLIT.split(company_a.lower()) if k}
    keywords_b = {k for k in _COMPANY_SPLIT.split(company_b.lower()) if k}
    return bool(keywords_a & keywords_b)


def are_complementary_roles(title_a: str, title_b: str) -> bool:
    a = title_a.lower()
    b = title_b.lower()
    return any(
        (role_a in a and role_b in b) or (role_b in a and role_a in b)
        for role_a, role_b in COMPLEMENTARY_ROLES
    )


# ============================================================================
# Applying suggestions
# ============================================================================


def plan_bulk_actions(suggestions: list[BulkSuggestion], selected_ids: Iterable[str]) -> BulkPlan:
    """Build actions for the selected suggestions, in source order.

    Suggestions whose payload is not ``create_action`` are reported in
    ``skipped`` so the caller can apply them another way.
    """
    selected = set(selected_ids)
    plan = BulkPlan()

    for suggestion in suggestions:
        if suggestion.id not in selected:
            continue

        if suggestion.suggested_action.type != "create_action":
            plan.skipped.append(SkippedRule(
                key=suggestion.id,
                reason=SkipReason.NOT_CONVERTIBLE,
                detail=suggestion.suggested_action.type,
            ))
            continue

        data = suggestion.suggested_action.data
        plan.actions.append(BulkAction(
            id=f"bulk_{suggestion.id}",
            contact_id=suggestion.contacts[0] if suggestion.contacts else None,
            title=data.get("title", suggestion.title),
            description=data.get("description", ""),
            type=data.get("type", "general"),
            priority=suggestion.priority,
            suggested_by="ai",
            confidence_score=suggestion.confidence,
            context=suggestion.reasoning,
        ))

    return plan


def create_bulk_actions(suggestions: list[BulkSuggestion], selected_ids: Iterable[str]) -> list[BulkAction]:
    """Actions for the selected ``create_action`` suggestions."""
    return plan_bulk_actions(suggestions, selected_ids).actions


def _by_confidence(suggestions: list[BulkSuggestion]) -> list[BulkSuggestion]:
    return sorted(suggestions, key=lambda s: s.confidence, reverse=True)


def _context_tags(value: Any) -> Iterable[str]:
    if isinstance(value, dict):
        for item in value.values():
            yield from _context_tags(item)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            yield from _context_tags(item)
    elif isinstance(value, str):
        tag = value.strip().lower()
        if tag:
            yield tag
    elif value is not None and not isinstance(value, bool):
        yield str(value).lower()
