"""Tests for the clock, calendar predicates and template rendering."""

from datetime import datetime, timedelta

import pytz

from followthru.core.clock import (
    FixedClock,
    days_between,
    is_first_day_of_quarter,
    is_first_monday_of_month,
    is_monday,
)
from followthru.core.templates import (
    TemplateRegistry,
    due_date_for,
    find_unresolved,
    render_template,
)
from followthru.models import ActionPriority, ActionTemplate


class TestCalendar:
    """Tests for the calendar predicates."""

    def test_first_monday_of_month(self):
        assert is_first_monday_of_month(datetime(2026, 10, 5))
        assert not is_first_monday_of_month(datetime(2026, 10, 12))
        assert not is_first_monday_of_month(datetime(2026, 10, 1))  # Thursday

    def test_monday(self):
        assert is_monday(datetime(2026, 10, 12))
        assert not is_monday(datetime(2026, 10, 17))

    def test_first_day_of_quarter(self):
        for month in (1, 4, 7, 10):
            assert is_first_day_of_quarter(datetime(2026, month, 1))
        assert not is_first_day_of_quarter(datetime(2026, 2, 1))
        assert not is_first_day_of_quarter(datetime(2026, 4, 2))

    def test_days_between_mixed_awareness(self):
        """A naive timestamp is compared against the aware one's wall time."""
        later = pytz.utc.localize(datetime(2026, 10, 17, 12, 0))
        assert days_between(datetime(2026, 10, 7, 12, 0), later) == 10


class TestFixedClock:
    """Tests for the fixed clock."""

    def test_localizes_naive_time(self):
        clock = FixedClock(datetime(2026, 10, 17, 9, 0), timezone="America/Sao_Paulo")
        now = clock.now()
        assert now.tzinfo is not None
        assert now.hour == 9

    def test_advance(self):
        clock = FixedClock(datetime(2026, 10, 17, 9, 0))
        clock.advance(days=2)
        assert clock.now().day == 19


class TestRendering:
    """Tests for placeholder substitution."""

    def test_render_replaces_every_occurrence(self):
        text = render_template("{name} and {name} met {count} times", {"name": "Ada", "count": 3})
        assert text == "Ada and Ada met 3 times"

    def test_render_leaves_unknown_placeholders(self):
        text = render_template("Hi {name}, about {topic}", {"name": "Ada"})
        assert text == "Hi Ada, about {topic}"
        assert find_unresolved(text) == ["topic"]

    def test_find_unresolved_across_texts(self):
        assert find_unresolved("{a} {b}", "{b} {c}", "") == ["a", "b", "c"]

    def test_due_dates_by_priority(self):
        now = datetime(2026, 10, 17, 9, 0)
        assert due_date_for(ActionPriority.URGENT, now) == now + timedelta(days=1)
        assert due_date_for("high", now) == now + timedelta(days=3)
        assert due_date_for(ActionPriority.MEDIUM, now) == now + timedelta(days=7)
        assert due_date_for("low", now) == now + timedelta(days=14)


class TestTemplateRegistry:
    """Tests for template lookup."""

    def _template(self, key, template_id, active=True):
        return ActionTemplate(
            id=template_id,
            template_key=key,
            action_type="review_goal",
            title_template="Title",
            active=active,
        )

    def test_inactive_templates_are_ignored(self):
        registry = TemplateRegistry([self._template("a", "1", active=False)])
        assert "a" not in registry
        assert len(registry) == 0

    def test_duplicate_key_keeps_first(self):
        registry = TemplateRegistry([self._template("a", "1"), self._template("a", "2")])
        assert registry.get("a").id == "1"
        assert registry.keys() == ["a"]
