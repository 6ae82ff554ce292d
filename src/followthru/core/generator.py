"""System action generator.

Loads templates and relationship state for a trigger context, runs the
trigger's rules, renders the templates that fired and writes the resulting
actions plus one history row.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from followthru.core.clock import Clock
from followthru.core.dedup import DuplicateGuard, GenerationFingerprint
from followthru.core.rules import (
    RuleHit,
    artifact_follow_ups,
    goal_health_rules,
    relationship_decay_rules,
    scheduled_rules,
)
from followthru.core.templates import (
    TemplateRegistry,
    due_date_for,
    find_unresolved,
    render_template,
)
from followthru.errors import UnresolvedPlaceholderError
from followthru.models import (
    ArtifactProcessingContext,
    GeneratedAction,
    GenerationHistory,
    GenerationResult,
    GeneratorConfig,
    GoalHealthContext,
    ManualContext,
    PlaceholderPolicy,
    RelationshipDecayContext,
    ScheduledContext,
    SkippedRule,
    SkipReason,
    TriggerContext,
    TriggerType,
)

if TYPE_CHECKING:
    from followthru.db import Database


class SystemActionGenerator:
    """Generates follow-up actions for one trigger context at a time.

    The generator holds no per-invocation state; a single instance can serve
    every request of a process.
    """

    def __init__(
        self,
        db: "Database",
        config: GeneratorConfig | None = None,
        clock: Clock | None = None,
    ):
        """Initialize the generator.

        Args:
            db: Store to read state from and write actions to
            config: Generator configuration (defaults if omitted)
            clock: Source of "now"; defaults to a wall clock in config.timezone
        """
        self.db = db
        self.config = config or GeneratorConfig()
        self.clock = clock or Clock(self.config.timezone)
        self._guard = DuplicateGuard(
            db,
            window_hours=self.config.dedup.window_hours,
            enabled=self.config.dedup.enabled,
        )

    def generate(self, context: TriggerContext) -> GenerationResult:
        """Run the rules for ``context`` and persist what they produce.

        Store failures propagate as StoreError and nothing is written.
        """
        now = self.clock.now()
        trigger = TriggerType(context.trigger_type)
        log = logger.bind(user_id=context.user_id, trigger_type=trigger.value)
        log.debug(f"Generating actions for context: {context.model_dump_json()}")

        fingerprint = GenerationFingerprint.create(context, now)
        dedup = self._guard.check(fingerprint, now)
        if dedup.is_duplicate:
            log.info(f"Skipping duplicate invocation: {dedup.reason}")
            return GenerationResult(
                idempotency_key=fingerprint.idempotency_key,
                duplicate=True,
                skipped=[SkippedRule(
                    key=trigger.value,
                    reason=SkipReason.DUPLICATE_INVOCATION,
                    detail=dedup.reason,
                )],
            )

        registry = TemplateRegistry(self.db.get_templates(active_only=True))
        log.debug(f"Loaded {len(registry)} active templates")

        hits, actions, skipped = self._evaluate(context, now)

        for hit in hits:
            action = self._render(hit, registry, context.user_id, now, skipped)
            if action is not None:
                actions.append(action)

        for skip in skipped:
            log.bind(key=skip.key, reason=skip.reason.value).warning(
                f"Rule '{skip.key}' produced no action: {skip.reason.value}"
                + (f" ({skip.detail})" if skip.detail else "")
            )

        history = None
        if actions:
            history = GenerationHistory(
                user_id=context.user_id,
                goal_id=getattr(context, "goal_id", None),
                contact_id=getattr(context, "contact_id", None),
                trigger_type=trigger,
                actions_generated=len(actions),
                idempotency_key=fingerprint.idempotency_key,
                metadata={
                    **context.metadata,
                    "generation_triggers": [a.generation_trigger for a in actions],
                    "skipped": len(skipped),
                },
                created_at=now,
            )
            actions = self.db.record_generation(actions, history)

        log.info(f"Generated {len(actions)} actions ({len(skipped)} skipped)")

        return GenerationResult(
            emitted=actions,
            skipped=skipped,
            idempotency_key=fingerprint.idempotency_key,
        )

    def _evaluate(
        self,
        context: TriggerContext,
        now: datetime,
    ) -> tuple[list[RuleHit], list[GeneratedAction], list[SkippedRule]]:
        """Load the state a trigger needs and run its rules.

        Returns template hits, actions built without templates, and skips.
        """
        hits: list[RuleHit] = []
        direct: list[GeneratedAction] = []
        skipped: list[SkippedRule] = []

        if isinstance(context, GoalHealthContext):
            goal = self.db.get_goal_state(context.goal_id, context.user_id)
            if goal is None:
                skipped.append(_missing(f"goal:{context.goal_id}", "goal not found"))
            else:
                hits = goal_health_rules(
                    goal,
                    now,
                    skip_monthly_review=context.skip_monthly_review,
                    stale_days=self.config.stale_goal_days,
                )

        elif isinstance(context, RelationshipDecayContext):
            health = self.db.get_relationship_health(context.user_id, context.contact_id)
            if health is None:
                skipped.append(_missing(
                    f"contact:{context.contact_id}", "no relationship health metrics"
                ))
            else:
                hits = relationship_decay_rules(
                    health,
                    now,
                    dormant_after_days=self.config.dormant_after_days,
                )

        elif isinstance(context, ScheduledContext):
            goals = self.db.get_active_goals(context.user_id)
            hits = scheduled_rules(
                goals,
                now,
                skip_weekly_check=context.skip_weekly_check,
                skip_quarterly_audit=context.skip_quarterly_audit,
                max_weekly_goals=self.config.max_weekly_goals,
            )

        elif isinstance(context, ArtifactProcessingContext):
            artifact = self.db.get_artifact(context.artifact_id, context.user_id)
            if artifact is None:
                skipped.append(_missing(f"artifact:{context.artifact_id}", "artifact not found"))
            else:
                direct = artifact_follow_ups(
                    artifact,
                    context.user_id,
                    now,
                    goal_id=context.goal_id,
                    contact_id=context.contact_id,
                )

        elif isinstance(context, ManualContext):
            hits = [self._manual_hit(context)]

        return hits, direct, skipped

    def _manual_hit(self, context: ManualContext) -> RuleHit:
        variables = dict(context.variables)
        if context.goal_id:
            goal = self.db.get_goal_state(context.goal_id, context.user_id)
            if goal is not None:
                variables.setdefault("goal_title", goal.title)
        if context.contact_id:
            contact = self.db.get_contact(context.contact_id, context.user_id)
            if contact is not None:
                variables.setdefault("contact_name", contact.name)
        return RuleHit(
            context.template_key,
            variables,
            goal_id=context.goal_id,
            contact_id=context.contact_id,
        )

    def _render(
        self,
        hit: RuleHit,
        registry: TemplateRegistry,
        user_id: str,
        now: datetime,
        skipped: list[SkippedRule],
    ) -> GeneratedAction | None:
        """Render one rule hit into an action, or record why it was skipped."""
        template = registry.get(hit.template_key)
        if template is None:
            skipped.append(SkippedRule(key=hit.template_key, reason=SkipReason.TEMPLATE_MISSING))
            return None

        title = render_template(template.title_template, hit.variables)
        description = render_template(template.description_template, hit.variables)

        unresolved = find_unresolved(title, description)
        if unresolved:
            policy = self.config.on_unresolved_placeholder
            if policy == PlaceholderPolicy.ERROR:
                raise UnresolvedPlaceholderError(template.template_key, unresolved)
            if policy == PlaceholderPolicy.SKIP:
                skipped.append(SkippedRule(
                    key=template.template_key,
                    reason=SkipReason.UNRESOLVED_PLACEHOLDERS,
                    detail=", ".join(unresolved),
                ))
                return None
            logger.bind(template_key=template.template_key, tokens=unresolved).warning(
                f"Template '{template.template_key}' rendered with unresolved placeholders: "
                f"{', '.join(unresolved)}"
            )

        return GeneratedAction(
            user_id=user_id,
            goal_id=hit.goal_id,
            contact_id=hit.contact_id,
            action_type=template.action_type,
            title=title,
            description=description,
            priority=template.priority,
            duration_minutes=template.estimated_duration_minutes,
            due_date=due_date_for(template.priority, now),
            generation_trigger=template.template_key,
            template_id=template.id,
            context_metadata=dict(hit.variables),
            created_at=now,
        )


def _missing(key: str, detail: str) -> SkippedRule:
    return SkippedRule(key=key, reason=SkipReason.RECORD_MISSING, detail=detail)
