"""Action template rendering and lookup."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any, Iterable

from loguru import logger

from followthru.models import DUE_DAYS, ActionPriority, ActionTemplate

PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_template(template: str, variables: dict[str, Any]) -> str:
    """Replace every ``{key}`` with ``str(value)``.

    Placeholders with no matching variable are left as they are; use
    :func:`find_unresolved` to detect them.
    """
    result = template
    for key, value in variables.items():
        result = result.replace(f"{{{key}}}", str(value))
    return result


def find_unresolved(*texts: str) -> list[str]:
    """Return the placeholder names still present in the given strings."""
    tokens: list[str] = []
    for text in texts:
        for name in PLACEHOLDER_RE.findall(text or ""):
            if name not in tokens:
                tokens.append(name)
    return tokens


def due_date_for(priority: ActionPriority | str, now: datetime) -> datetime:
    """Due date for an action of the given priority created at ``now``."""
    return now + timedelta(days=DUE_DAYS[ActionPriority(priority)])


class TemplateRegistry:
    """Active templates indexed by template_key."""

    def __init__(self, templates: Iterable[ActionTemplate]):
        self._templates: dict[str, ActionTemplate] = {}
        for template in templates:
            if not template.active:
                continue
            if template.template_key in self._templates:
                logger.warning(f"Duplicate template key '{template.template_key}', keeping the first")
                continue
            self._templates[template.template_key] = template

    def get(self, template_key: str) -> ActionTemplate | None:
        return self._templates.get(template_key)

    def keys(self) -> list[str]:
        return list(self._templates)

    def __contains__(self, template_key: str) -> bool:
        return template_key in self._templates

    def __len__(self) -> int:
        return len(self._templates)
