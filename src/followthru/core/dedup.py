"""Duplicate-invocation guard for the system action generator.

Each invocation gets an idempotency key built from who and what triggered it
and the calendar day. The key is stored on the generation history row, so a
second invocation with the same key inside the window is recognized and
emits nothing.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from followthru.db import Database
    from followthru.models import TriggerContext


@dataclass
class GenerationFingerprint:
    """Fingerprint of a generator invocation for deduplication."""

    user_id: str
    trigger_type: str
    day: str
    idempotency_key: str

    @classmethod
    def create(cls, context: "TriggerContext", now: datetime) -> "GenerationFingerprint":
        """Build the fingerprint for ``context`` on the day of ``now``.

        Args:
            context: The trigger context
            now: Current time from the generator's clock

        Returns:
            GenerationFingerprint instance
        """
        day = now.date().isoformat()
        parts = [
            context.user_id,
            str(context.trigger_type),
            getattr(context, "goal_id", None) or "",
            getattr(context, "contact_id", None) or "",
            getattr(context, "artifact_id", None) or "",
            getattr(context, "template_key", None) or "",
            day,
        ]
        key = hashlib.sha256("|".join(parts).encode()).hexdigest()[:16]

        return cls(
            user_id=context.user_id,
            trigger_type=str(context.trigger_type),
            day=day,
            idempotency_key=key,
        )


@dataclass
class DedupResult:
    """Result of a deduplication check."""

    is_duplicate: bool
    reason: str | None = None
    original_history_id: int | None = None
    original_created_at: datetime | None = None


class DuplicateGuard:
    """Checks generation history for an earlier invocation with the same key."""

    def __init__(self, db: "Database", window_hours: int = 24, enabled: bool = True):
        """Initialize the guard.

        Args:
            db: Database instance
            window_hours: How far back a matching history row counts
            enabled: When False every check passes
        """
        self._db = db
        self._window = timedelta(hours=window_hours)
        self.enabled = enabled

    def check(self, fingerprint: GenerationFingerprint, now: datetime) -> DedupResult:
        """Check whether this invocation already ran inside the window."""
        if not self.enabled:
            return DedupResult(is_duplicate=False)

        previous = self._db.find_history_by_key(
            fingerprint.idempotency_key,
            since=now - self._window,
        )
        if previous is None:
            return DedupResult(is_duplicate=False)

        logger.debug(
            f"Duplicate invocation for key {fingerprint.idempotency_key} "
            f"(history #{previous.id} at {previous.created_at.isoformat()})"
        )
        return DedupResult(
            is_duplicate=True,
            reason=f"Same {fingerprint.trigger_type} invocation already generated actions on {fingerprint.day}",
            original_history_id=previous.id,
            original_created_at=previous.created_at,
        )
