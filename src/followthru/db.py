"""SQLite store for Followthru templates, relationship state and generated actions."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

from loguru import logger

from followthru.config import DEFAULT_DB_FILE
from followthru.errors import StoreError
from followthru.models import (
    ActionPriority,
    ActionStatus,
    ActionTemplate,
    Artifact,
    ArtifactSuggestion,
    Contact,
    GeneratedAction,
    GenerationHistory,
    Goal,
    GoalState,
    GoalTarget,
    NetworkRelationship,
    RelationshipHealth,
    TriggerType,
)

# Schema version
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Action templates
CREATE TABLE IF NOT EXISTS system_action_templates (
    id TEXT PRIMARY KEY,
    template_key TEXT NOT NULL UNIQUE,
    action_type TEXT NOT NULL,
    title_template TEXT NOT NULL,
    description_template TEXT DEFAULT '',
    priority TEXT NOT NULL DEFAULT 'medium',
    estimated_duration_minutes INTEGER DEFAULT 15,
    trigger_conditions TEXT,
    active INTEGER DEFAULT 1
);

-- Contacts
CREATE TABLE IF NOT EXISTS contacts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    title TEXT,
    company TEXT,
    email TEXT,
    last_interaction_date TEXT,
    professional_context TEXT,
    personal_context TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Goals
CREATE TABLE IF NOT EXISTS goals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    target_contact_count INTEGER,
    status TEXT DEFAULT 'active',
    created_at TEXT NOT NULL
);

-- Contacts associated with a goal
CREATE TABLE IF NOT EXISTS goal_contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    goal_id TEXT NOT NULL,
    contact_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(goal_id, contact_id),
    FOREIGN KEY (goal_id) REFERENCES goals(id),
    FOREIGN KEY (contact_id) REFERENCES contacts(id)
);

-- Goal targets
CREATE TABLE IF NOT EXISTS goal_targets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    goal_id TEXT NOT NULL,
    contact_id TEXT NOT NULL,
    target_description TEXT DEFAULT '',
    target_type TEXT NOT NULL,
    priority TEXT DEFAULT 'medium',
    status TEXT DEFAULT 'active',
    FOREIGN KEY (goal_id) REFERENCES goals(id)
);

-- Known relationships between contacts
CREATE TABLE IF NOT EXISTS network_relationships (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    contact_a_id TEXT NOT NULL,
    contact_b_id TEXT NOT NULL,
    relationship_type TEXT NOT NULL,
    strength TEXT NOT NULL,
    introduction_successful INTEGER,
    context TEXT,
    created_at TEXT NOT NULL
);

-- Relationship health metrics per (user, contact)
CREATE TABLE IF NOT EXISTS relationship_health_metrics (
    user_id TEXT NOT NULL,
    contact_id TEXT NOT NULL,
    relationship_strength TEXT,
    last_interaction_date TEXT,
    reciprocity_balance REAL DEFAULT 0,
    updated_at TEXT,
    PRIMARY KEY (user_id, contact_id)
);

-- Artifacts and their parsed suggestions
CREATE TABLE IF NOT EXISTS artifacts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    contact_id TEXT,
    type TEXT NOT NULL DEFAULT 'note',
    content TEXT DEFAULT '',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS artifact_suggestions (
    id TEXT PRIMARY KEY,
    artifact_id TEXT NOT NULL,
    suggestion_type TEXT NOT NULL,
    title TEXT,
    content TEXT DEFAULT '',
    priority TEXT,
    metadata TEXT,
    FOREIGN KEY (artifact_id) REFERENCES artifacts(id)
);

-- Actions
CREATE TABLE IF NOT EXISTS actions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    goal_id TEXT,
    contact_id TEXT,
    artifact_id TEXT,
    action_type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    priority TEXT NOT NULL,
    estimated_duration_minutes INTEGER,
    due_date TEXT,
    system_generated INTEGER DEFAULT 0,
    generation_trigger TEXT,
    template_id TEXT,
    context_metadata TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL
);

-- Generation history (audit trail)
CREATE TABLE IF NOT EXISTS action_generation_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    goal_id TEXT,
    contact_id TEXT,
    trigger_type TEXT NOT NULL,
    actions_generated INTEGER NOT NULL,
    idempotency_key TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_contacts_user_id ON contacts(user_id);
CREATE INDEX IF NOT EXISTS idx_goals_user_id ON goals(user_id);
CREATE INDEX IF NOT EXISTS idx_goal_contacts_goal_id ON goal_contacts(goal_id);
CREATE INDEX IF NOT EXISTS idx_goal_targets_goal_id ON goal_targets(goal_id);
CREATE INDEX IF NOT EXISTS idx_network_relationships_user_id ON network_relationships(user_id);
CREATE INDEX IF NOT EXISTS idx_artifact_suggestions_artifact_id ON artifact_suggestions(artifact_id);
CREATE INDEX IF NOT EXISTS idx_actions_user_id ON actions(user_id);
CREATE INDEX IF NOT EXISTS idx_actions_goal_id ON actions(goal_id, created_at);
CREATE INDEX IF NOT EXISTS idx_history_user_id ON action_generation_history(user_id);
CREATE INDEX IF NOT EXISTS idx_history_idempotency_key ON action_generation_history(idempotency_key);
"""


def _dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _loads(value: str | None) -> Any:
    if not value:
        return None
    return json.loads(value)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Database:
    """SQLite database manager for Followthru."""

    def __init__(self, db_path: Path | None = None):
        """Initialize the database."""
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_FILE
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Ensure the database exists and is up to date."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
                logger.debug(f"Initialized database at {self.db_path}")

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection. Commits on success, rolls back on error."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # =========================================================================
    # Template Methods
    # =========================================================================

    def save_template(self, template: ActionTemplate) -> None:
        """Insert or replace a template by template_key."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO system_action_templates (
                    id, template_key, action_type, title_template, description_template,
                    priority, estimated_duration_minutes, trigger_conditions, active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    template.id,
                    template.template_key,
                    template.action_type,
                    template.title_template,
                    template.description_template,
                    template.priority.value,
                    template.estimated_duration_minutes,
                    _dumps(template.trigger_conditions),
                    1 if template.active else 0,
                ),
            )

    def get_templates(self, active_only: bool = True) -> list[ActionTemplate]:
        """Get templates, by default only active ones."""
        with self._connect() as conn:
            query = "SELECT * FROM system_action_templates"
            if active_only:
                query += " WHERE active = 1"
            query += " ORDER BY template_key"
            rows = conn.execute(query).fetchall()

        return [
            ActionTemplate(
                id=row["id"],
                template_key=row["template_key"],
                action_type=row["action_type"],
                title_template=row["title_template"],
                description_template=row["description_template"] or "",
                priority=ActionPriority(row["priority"]),
                estimated_duration_minutes=row["estimated_duration_minutes"] or 0,
                trigger_conditions=_loads(row["trigger_conditions"]) or {},
                active=bool(row["active"]),
            )
            for row in rows
        ]

    # =========================================================================
    # Contact Methods
    # =========================================================================

    def save_contact(self, user_id: str, contact: Contact) -> None:
        """Insert or replace a contact."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO contacts (
                    id, user_id, name, title, company, email, last_interaction_date,
                    professional_context, personal_context
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    contact.id,
                    user_id,
                    contact.name,
                    contact.title,
                    contact.company,
                    contact.email,
                    _iso(contact.last_interaction),
                    _dumps(contact.professional_context),
                    _dumps(contact.personal_context),
                ),
            )

    def get_contacts(self, user_id: str) -> list[Contact]:
        """Get all contacts of a user."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM contacts WHERE user_id = ? ORDER BY created_at, id", (user_id,)
            ).fetchall()
        return [self._row_to_contact(row) for row in rows]

    def get_contact(self, contact_id: str, user_id: str) -> Contact | None:
        """Get one of a user's contacts."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM contacts WHERE id = ? AND user_id = ?", (contact_id, user_id)
            ).fetchone()
        return self._row_to_contact(row) if row else None

    def _row_to_contact(self, row: sqlite3.Row) -> Contact:
        return Contact(
            id=row["id"],
            name=row["name"],
            title=row["title"],
            company=row["company"],
            email=row["email"],
            last_interaction=_dt(row["last_interaction_date"]),
            professional_context=_loads(row["professional_context"]),
            personal_context=_loads(row["personal_context"]),
        )

    # =========================================================================
    # Goal Methods
    # =========================================================================

    def save_goal(
        self,
        goal_id: str,
        user_id: str,
        title: str,
        target_contact_count: int | None = None,
        status: str = "active",
        description: str | None = None,
        created_at: datetime | None = None,
    ) -> None:
        """Insert or replace a goal."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO goals (
                    id, user_id, title, description, target_contact_count, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    goal_id,
                    user_id,
                    title,
                    description,
                    target_contact_count,
                    status,
                    (created_at or datetime.now()).isoformat(),
                ),
            )

    def add_goal_contact(self, goal_id: str, contact_id: str, user_id: str) -> None:
        """Associate a contact with a goal."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO goal_contacts (goal_id, contact_id, user_id) VALUES (?, ?, ?)",
                (goal_id, contact_id, user_id),
            )

    def get_goal_state(self, goal_id: str, user_id: str) -> GoalState | None:
        """Get a goal with its contact count and most recent action time."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT g.*,
                    (SELECT COUNT(*) FROM goal_contacts gc WHERE gc.goal_id = g.id) AS contact_count,
                    (SELECT MAX(a.created_at) FROM actions a WHERE a.goal_id = g.id) AS last_action_at
                FROM goals g
                WHERE g.id = ? AND g.user_id = ?
                """,
                (goal_id, user_id),
            ).fetchone()

        if row is None:
            return None
        return self._row_to_goal_state(row)

    def get_active_goals(self, user_id: str) -> list[GoalState]:
        """Get a user's active goals, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT g.*,
                    (SELECT COUNT(*) FROM goal_contacts gc WHERE gc.goal_id = g.id) AS contact_count,
                    (SELECT MAX(a.created_at) FROM actions a WHERE a.goal_id = g.id) AS last_action_at
                FROM goals g
                WHERE g.user_id = ? AND g.status = 'active'
                ORDER BY g.created_at, g.id
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_goal_state(row) for row in rows]

    def get_goals(self, user_id: str) -> list[Goal]:
        """Get all goals of a user for the suggestion scorer."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM goals WHERE user_id = ? ORDER BY created_at, id", (user_id,)
            ).fetchall()
        return [
            Goal(
                id=row["id"],
                title=row["title"],
                description=row["description"],
                is_active=row["status"] == "active",
            )
            for row in rows
        ]

    def _row_to_goal_state(self, row: sqlite3.Row) -> GoalState:
        return GoalState(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            target_contacts=row["target_contact_count"],
            contact_count=row["contact_count"] or 0,
            last_action_at=_dt(row["last_action_at"]),
            status=row["status"] or "active",
        )

    # =========================================================================
    # Goal Target / Network Methods
    # =========================================================================

    def save_goal_target(self, user_id: str, target: GoalTarget) -> None:
        """Insert or replace a goal target."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO goal_targets (
                    id, user_id, goal_id, contact_id, target_description,
                    target_type, priority, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    target.id,
                    user_id,
                    target.goal_id,
                    target.contact_id,
                    target.target_description,
                    target.target_type,
                    target.priority,
                    target.status,
                ),
            )

    def get_goal_targets(self, user_id: str) -> list[GoalTarget]:
        """Get all goal targets of a user."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM goal_targets WHERE user_id = ? ORDER BY rowid", (user_id,)
            ).fetchall()
        return [
            GoalTarget(
                id=row["id"],
                goal_id=row["goal_id"],
                contact_id=row["contact_id"],
                target_description=row["target_description"] or "",
                target_type=row["target_type"],
                priority=row["priority"] or "medium",
                status=row["status"] or "active",
            )
            for row in rows
        ]

    def save_network_relationship(self, user_id: str, relationship: NetworkRelationship) -> None:
        """Insert or replace a relationship between two contacts."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO network_relationships (
                    id, user_id, contact_a_id, contact_b_id, relationship_type,
                    strength, introduction_successful, context, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    relationship.id,
                    user_id,
                    relationship.contact_a_id,
                    relationship.contact_b_id,
                    relationship.relationship_type,
                    relationship.strength,
                    None if relationship.introduction_successful is None
                    else int(relationship.introduction_successful),
                    relationship.context,
                    relationship.created_at.isoformat(),
                ),
            )

    def get_network_relationships(self, user_id: str) -> list[NetworkRelationship]:
        """Get all known relationships between a user's contacts."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM network_relationships WHERE user_id = ? ORDER BY created_at, id",
                (user_id,),
            ).fetchall()
        return [
            NetworkRelationship(
                id=row["id"],
                contact_a_id=row["contact_a_id"],
                contact_b_id=row["contact_b_id"],
                relationship_type=row["relationship_type"],
                strength=row["strength"],
                introduction_successful=None if row["introduction_successful"] is None
                else bool(row["introduction_successful"]),
                context=row["context"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # =========================================================================
    # Relationship Health Methods
    # =========================================================================

    def save_relationship_health(self, health: RelationshipHealth) -> None:
        """Insert or replace the health metrics for a (user, contact) pair."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO relationship_health_metrics (
                    user_id, contact_id, relationship_strength, last_interaction_date,
                    reciprocity_balance, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    health.user_id,
                    health.contact_id,
                    health.relationship_strength,
                    _iso(health.last_interaction_date),
                    health.reciprocity_balance,
                    datetime.now().isoformat(),
                ),
            )

    def get_relationship_health(self, user_id: str, contact_id: str) -> RelationshipHealth | None:
        """Get health metrics for a (user, contact) pair, with the contact's name."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT m.*, c.name AS contact_name
                FROM relationship_health_metrics m
                LEFT JOIN contacts c ON c.id = m.contact_id
                WHERE m.user_id = ? AND m.contact_id = ?
                """,
                (user_id, contact_id),
            ).fetchone()

        if row is None:
            return None

        return RelationshipHealth(
            user_id=row["user_id"],
            contact_id=row["contact_id"],
            contact_name=row["contact_name"],
            relationship_strength=row["relationship_strength"],
            last_interaction_date=_dt(row["last_interaction_date"]),
            reciprocity_balance=row["reciprocity_balance"] or 0.0,
        )

    # =========================================================================
    # Artifact Methods
    # =========================================================================

    def save_artifact(self, artifact: Artifact) -> None:
        """Insert or replace an artifact together with its suggestions."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO artifacts (id, user_id, contact_id, type, content)
                VALUES (?, ?, ?, ?, ?)
                """,
                (artifact.id, artifact.user_id, artifact.contact_id, artifact.type, artifact.content),
            )
            conn.execute("DELETE FROM artifact_suggestions WHERE artifact_id = ?", (artifact.id,))
            conn.executemany(
                """
                INSERT INTO artifact_suggestions (
                    id, artifact_id, suggestion_type, title, content, priority, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        s.id,
                        artifact.id,
                        s.suggestion_type,
                        s.title,
                        s.content,
                        s.priority.value if s.priority else None,
                        _dumps(s.metadata),
                    )
                    for s in artifact.suggestions
                ],
            )

    def get_artifact(self, artifact_id: str, user_id: str) -> Artifact | None:
        """Get an artifact and its suggestions."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM artifacts WHERE id = ? AND user_id = ?", (artifact_id, user_id)
            ).fetchone()
            if row is None:
                return None
            suggestion_rows = conn.execute(
                "SELECT * FROM artifact_suggestions WHERE artifact_id = ? ORDER BY rowid",
                (artifact_id,),
            ).fetchall()

        return Artifact(
            id=row["id"],
            user_id=row["user_id"],
            contact_id=row["contact_id"],
            type=row["type"],
            content=row["content"] or "",
            suggestions=[
                ArtifactSuggestion(
                    id=s["id"],
                    artifact_id=s["artifact_id"],
                    suggestion_type=s["suggestion_type"],
                    title=s["title"],
                    content=s["content"] or "",
                    priority=ActionPriority(s["priority"]) if s["priority"] else None,
                    metadata=_loads(s["metadata"]) or {},
                )
                for s in suggestion_rows
            ],
        )

    # =========================================================================
    # Action / History Methods
    # =========================================================================

    def record_generation(
        self,
        actions: list[GeneratedAction],
        history: GenerationHistory | None,
    ) -> list[GeneratedAction]:
        """Insert an action batch and its history row in one transaction.

        Returns the actions with their assigned ids. Nothing is written if any
        insert fails.
        """
        stored: list[GeneratedAction] = []
        with self._connect() as conn:
            for action in actions:
                cursor = conn.execute(
                    """
                    INSERT INTO actions (
                        user_id, goal_id, contact_id, artifact_id, action_type, title,
                        description, priority, estimated_duration_minutes, due_date,
                        system_generated, generation_trigger, template_id,
                        context_metadata, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        action.user_id,
                        action.goal_id,
                        action.contact_id,
                        action.artifact_id,
                        action.action_type,
                        action.title,
                        action.description,
                        action.priority.value,
                        action.duration_minutes,
                        action.due_date.isoformat(),
                        1 if action.system_generated else 0,
                        action.generation_trigger,
                        action.template_id,
                        _dumps(action.context_metadata),
                        action.status.value,
                        action.created_at.isoformat(),
                    ),
                )
                stored.append(action.model_copy(update={"id": cursor.lastrowid}))

            if history is not None:
                cursor = conn.execute(
                    """
                    INSERT INTO action_generation_history (
                        user_id, goal_id, contact_id, trigger_type, actions_generated,
                        idempotency_key, metadata, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        history.user_id,
                        history.goal_id,
                        history.contact_id,
                        history.trigger_type.value,
                        history.actions_generated,
                        history.idempotency_key,
                        _dumps(history.metadata),
                        history.created_at.isoformat(),
                    ),
                )
                history.id = cursor.lastrowid

        return stored

    def get_actions(
        self,
        user_id: str,
        goal_id: str | None = None,
        limit: int = 100,
    ) -> list[GeneratedAction]:
        """Get a user's actions, newest first."""
        with self._connect() as conn:
            query = "SELECT * FROM actions WHERE user_id = ?"
            params: list = [user_id]

            if goal_id:
                query += " AND goal_id = ?"
                params.append(goal_id)

            query += " ORDER BY created_at DESC, id DESC LIMIT ?"
            params.append(limit)

            rows = conn.execute(query, params).fetchall()

        return [self._row_to_action(row) for row in rows]

    def _row_to_action(self, row: sqlite3.Row) -> GeneratedAction:
        return GeneratedAction(
            id=row["id"],
            user_id=row["user_id"],
            goal_id=row["goal_id"],
            contact_id=row["contact_id"],
            artifact_id=row["artifact_id"],
            action_type=row["action_type"],
            title=row["title"],
            description=row["description"] or "",
            priority=ActionPriority(row["priority"]),
            duration_minutes=row["estimated_duration_minutes"],
            due_date=datetime.fromisoformat(row["due_date"]),
            system_generated=bool(row["system_generated"]),
            generation_trigger=row["generation_trigger"] or "",
            template_id=row["template_id"],
            context_metadata=_loads(row["context_metadata"]) or {},
            status=ActionStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def get_history(self, user_id: str, limit: int = 50) -> list[GenerationHistory]:
        """Get a user's generation history, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM action_generation_history
                WHERE user_id = ? ORDER BY id DESC LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [self._row_to_history(row) for row in rows]

    def find_history_by_key(self, idempotency_key: str, since: datetime) -> GenerationHistory | None:
        """Most recent history row with this key created at or after ``since``."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM action_generation_history
                WHERE idempotency_key = ? ORDER BY id DESC
                """,
                (idempotency_key,),
            ).fetchall()

        for row in rows:
            history = self._row_to_history(row)
            created = history.created_at
            cutoff = since
            if (created.tzinfo is None) != (cutoff.tzinfo is None):
                created = created.replace(tzinfo=None)
                cutoff = cutoff.replace(tzinfo=None)
            if created >= cutoff:
                return history
        return None

    def _row_to_history(self, row: sqlite3.Row) -> GenerationHistory:
        return GenerationHistory(
            id=row["id"],
            user_id=row["user_id"],
            goal_id=row["goal_id"],
            contact_id=row["contact_id"],
            trigger_type=TriggerType(row["trigger_type"]),
            actions_generated=row["actions_generated"],
            idempotency_key=row["idempotency_key"],
            metadata=_loads(row["metadata"]) or {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )
