"""Pydantic models for Followthru configuration, store records and suggestions."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator


class ActionPriority(str, Enum):
    """Priority of a follow-up action."""

    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Days until a generated action is due, by priority
DUE_DAYS: dict[ActionPriority, int] = {
    ActionPriority.URGENT: 1,
    ActionPriority.HIGH: 3,
    ActionPriority.MEDIUM: 7,
    ActionPriority.LOW: 14,
}


class ActionStatus(str, Enum):
    """Lifecycle status of an action."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class TriggerType(str, Enum):
    """What caused a generator invocation."""

    GOAL_HEALTH = "goal_health"
    RELATIONSHIP_DECAY = "relationship_decay"
    ARTIFACT_PROCESSING = "artifact_processing"
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class SkipReason(str, Enum):
    """Why a rule or suggestion did not produce output."""

    TEMPLATE_MISSING = "template_missing"
    UNRESOLVED_PLACEHOLDERS = "unresolved_placeholders"
    RECORD_MISSING = "record_missing"
    DUPLICATE_INVOCATION = "duplicate_invocation"
    NOT_CONVERTIBLE = "not_convertible"


class PlaceholderPolicy(str, Enum):
    """What to do when a rendered template still has {token} placeholders."""

    WARN = "warn"    # Log and keep the action
    SKIP = "skip"    # Drop the action and report it
    ERROR = "error"  # Abort the invocation


# ============================================================================
# Store records
# ============================================================================


class ActionTemplate(BaseModel):
    """A configured action template, looked up by template_key."""

    id: str
    template_key: str
    action_type: str
    title_template: str
    description_template: str = ""
    priority: ActionPriority = ActionPriority.MEDIUM
    estimated_duration_minutes: int = 15
    trigger_conditions: dict[str, Any] = Field(default_factory=dict)
    active: bool = True


class GeneratedAction(BaseModel):
    """A system-generated follow-up action."""

    id: int | None = None  # Assigned on insert
    user_id: str
    goal_id: str | None = None
    contact_id: str | None = None
    artifact_id: str | None = None
    action_type: str
    title: str
    description: str = ""
    priority: ActionPriority
    duration_minutes: int | None = None
    due_date: datetime
    system_generated: bool = True
    generation_trigger: str
    template_id: str | None = None
    context_metadata: dict[str, Any] = Field(default_factory=dict)
    status: ActionStatus = ActionStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)


class GenerationHistory(BaseModel):
    """Audit row written once per invocation that produced actions."""

    id: int | None = None
    user_id: str
    goal_id: str | None = None
    contact_id: str | None = None
    trigger_type: TriggerType
    actions_generated: int
    idempotency_key: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class GoalState(BaseModel):
    """A goal plus the facts the goal-health rules need."""

    id: str
    user_id: str
    title: str
    target_contacts: int | None = None
    contact_count: int = 0
    last_action_at: datetime | None = None
    status: str = "active"


class RelationshipHealth(BaseModel):
    """Relationship-health metrics for one (user, contact) pair."""

    user_id: str
    contact_id: str
    contact_name: str | None = None
    relationship_strength: str | None = None
    last_interaction_date: datetime | None = None
    reciprocity_balance: float = 0.0


class ArtifactSuggestion(BaseModel):
    """An AI-derived suggestion attached to an artifact."""

    id: str
    artifact_id: str
    suggestion_type: str
    title: str | None = None
    content: str = ""
    priority: ActionPriority | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Artifact(BaseModel):
    """An artifact (voice memo, meeting, note) with its parsed suggestions."""

    id: str
    user_id: str
    contact_id: str | None = None
    type: str = "note"
    content: str = ""
    suggestions: list[ArtifactSuggestion] = Field(default_factory=list)


# ============================================================================
# Trigger contexts
# ============================================================================


class _BaseContext(BaseModel):
    user_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_id")
    @classmethod
    def user_id_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("user_id must not be empty")
        return v


class GoalHealthContext(_BaseContext):
    trigger_type: Literal["goal_health"] = "goal_health"
    goal_id: str
    skip_monthly_review: bool = False


class RelationshipDecayContext(_BaseContext):
    trigger_type: Literal["relationship_decay"] = "relationship_decay"
    contact_id: str


class ScheduledContext(_BaseContext):
    trigger_type: Literal["scheduled"] = "scheduled"
    skip_weekly_check: bool = False
    skip_quarterly_audit: bool = False


class ArtifactProcessingContext(_BaseContext):
    trigger_type: Literal["artifact_processing"] = "artifact_processing"
    artifact_id: str
    goal_id: str | None = None
    contact_id: str | None = None


class ManualContext(_BaseContext):
    trigger_type: Literal["manual"] = "manual"
    template_key: str
    goal_id: str | None = None
    contact_id: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)


TriggerContext = Annotated[
    Union[
        GoalHealthContext,
        RelationshipDecayContext,
        ScheduledContext,
        ArtifactProcessingContext,
        ManualContext,
    ],
    Field(discriminator="trigger_type"),
]


# ============================================================================
# Generation results
# ============================================================================


class SkippedRule(BaseModel):
    """A rule that fired but produced no action, or a dropped suggestion."""

    key: str
    reason: SkipReason
    detail: str | None = None


class GenerationResult(BaseModel):
    """Outcome of one generator invocation."""

    emitted: list[GeneratedAction] = Field(default_factory=list)
    skipped: list[SkippedRule] = Field(default_factory=list)
    idempotency_key: str | None = None
    duplicate: bool = False

    @property
    def count(self) -> int:
        return len(self.emitted)


# ============================================================================
# Contact graph and bulk suggestions
# ============================================================================


class Contact(BaseModel):
    id: str
    name: str
    title: str | None = None
    company: str | None = None
    email: str | None = None
    last_interaction: datetime | None = None
    professional_context: dict[str, Any] | None = None
    personal_context: dict[str, Any] | None = None


class NetworkRelationship(BaseModel):
    id: str
    contact_a_id: str
    contact_b_id: str
    relationship_type: Literal["introduced_by_me", "known_connection", "target_connection"]
    strength: Literal["weak", "medium", "strong"]
    introduction_successful: bool | None = None
    context: str | None = None
    created_at: datetime


class Goal(BaseModel):
    id: str
    title: str
    description: str | None = None
    is_active: bool = True


class GoalTarget(BaseModel):
    id: str
    goal_id: str
    contact_id: str
    target_description: str = ""
    target_type: Literal["introduction", "information", "opportunity", "exploration"]
    priority: Literal["high", "medium", "low"] = "medium"
    status: Literal["active", "achieved", "archived"] = "active"


class SuggestionType(str, Enum):
    RELATIONSHIP = "relationship"
    GOAL_TARGET = "goal_target"
    ACTION = "action"
    INTRODUCTION = "introduction"


class SuggestedAction(BaseModel):
    """What applying a suggestion would create."""

    type: str  # create_action, create_introduction, strengthen_relationship
    data: dict[str, Any] = Field(default_factory=dict)


class TimingOpportunity(BaseModel):
    type: Literal["career_event", "company_milestone", "personal_milestone", "follow_up_due"]
    description: str
    urgency: Literal["high", "medium", "low"]


class BulkSuggestion(BaseModel):
    id: str
    type: SuggestionType
    title: str
    description: str
    confidence: float = Field(ge=0, le=100)
    priority: Literal["high", "medium", "low"]
    contacts: list[str] = Field(default_factory=list)
    suggested_action: SuggestedAction
    reasoning: str
    timing_opportunity: TimingOpportunity | None = None


class BulkAction(BaseModel):
    """An action built from an applied suggestion. The caller persists it."""

    id: str
    contact_id: str | None = None
    title: str
    description: str = ""
    type: Literal["pog", "ask", "follow_up", "introduction", "general"]
    priority: Literal["high", "medium", "low"]
    status: ActionStatus = ActionStatus.PENDING
    due_date: datetime | None = None
    suggested_by: Literal["ai", "user"] = "ai"
    confidence_score: float | None = None
    context: str | None = None


class BulkPlan(BaseModel):
    """Actions built from a suggestion selection, plus what could not be converted."""

    actions: list[BulkAction] = Field(default_factory=list)
    skipped: list[SkippedRule] = Field(default_factory=list)


# ============================================================================
# Configuration
# ============================================================================


class DaemonConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 9877
    log_level: str = "INFO"


class ApiAuthConfig(BaseModel):
    """API authentication configuration."""

    enabled: bool = False
    token: str | None = None


class ApiConfig(BaseModel):
    """API configuration."""

    auth: ApiAuthConfig = Field(default_factory=ApiAuthConfig)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class DedupConfig(BaseModel):
    """Duplicate-invocation guard configuration."""

    enabled: bool = True
    window_hours: int = 24


class GeneratorConfig(BaseModel):
    """System action generator configuration."""

    timezone: str = "UTC"
    on_unresolved_placeholder: PlaceholderPolicy = PlaceholderPolicy.SKIP
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    max_weekly_goals: int = 3
    stale_goal_days: int = 30
    dormant_after_days: int = 90


class FollowthruConfig(BaseModel):
    """Main Followthru configuration."""

    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    db_path: str | None = None
