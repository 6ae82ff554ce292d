"""Configuration loading and management for Followthru."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from followthru.errors import ConfigError
from followthru.models import ActionTemplate, FollowthruConfig

# Default paths
DEFAULT_CONFIG_DIR = Path(os.environ.get("FOLLOWTHRU_HOME", Path.home() / ".followthru"))
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "followthru.yaml"
DEFAULT_TEMPLATES_FILE = DEFAULT_CONFIG_DIR / "templates.yaml"
DEFAULT_DB_FILE = DEFAULT_CONFIG_DIR / "followthru.db"

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_DB_FILE",
    "DEFAULT_TEMPLATES_FILE",
    "DEFAULT_TEMPLATES_YAML",
    "create_default_config",
    "ensure_config_dir",
    "expand_env_vars",
    "load_config",
    "load_templates",
    "load_yaml_file",
    "resolve_db_path",
]

DEFAULT_TEMPLATES_YAML = """\
# Followthru action templates
# Placeholders use {name} and are filled from the variables each rule supplies.

empty_goal_bootstrap:
  action_type: add_contacts
  title_template: "Add your first contacts to {goal_title}"
  description_template: "{goal_title} has no contacts yet. Add a few people who could help you make progress."
  priority: high
  estimated_duration_minutes: 20
  trigger_conditions: {trigger: goal_health, condition: no_contacts}

contact_discovery:
  action_type: discover_contacts
  title_template: "Find more contacts for {goal_title}"
  description_template: "You have {current_contacts} of {target_contacts} contacts for this goal. Look for people who can help."
  priority: medium
  estimated_duration_minutes: 30
  trigger_conditions: {trigger: goal_health, condition: contact_count_below_target}

stale_goal_revival:
  action_type: review_goal
  title_template: "Revive {goal_title}"
  description_template: "Nothing has happened on this goal for {days_inactive} days. Pick one small next step."
  priority: medium
  estimated_duration_minutes: 15
  trigger_conditions: {trigger: goal_health, condition: no_activity_30_days}

monthly_goal_review:
  action_type: review_goal
  title_template: "Monthly review: {goal_title}"
  description_template: "Review progress on {goal_title} and adjust who you are working with."
  priority: low
  estimated_duration_minutes: 30
  trigger_conditions: {trigger: goal_health, condition: first_monday_of_month}

dormant_reconnection:
  action_type: reconnect
  title_template: "Reconnect with {contact_name}"
  description_template: "It has been {days_since} days since you last talked with {contact_name}. Send a quick note."
  priority: high
  estimated_duration_minutes: 10
  trigger_conditions: {trigger: relationship_decay, condition: no_interaction_90_days}

reciprocity_balance_pog:
  action_type: deliver_pog
  title_template: "Offer something of value to {contact_name}"
  description_template: "{contact_name} has given you more than you have given back. Share an introduction, insight or resource."
  priority: medium
  estimated_duration_minutes: 15
  trigger_conditions: {trigger: relationship_decay, condition: reciprocity_negative}

reciprocity_balance_ask:
  action_type: make_ask
  title_template: "Ask {contact_name} for help"
  description_template: "You have given {contact_name} a lot. It is fine to ask for something in return."
  priority: low
  estimated_duration_minutes: 10
  trigger_conditions: {trigger: relationship_decay, condition: reciprocity_positive}

weekly_goal_check:
  action_type: review_goal
  title_template: "Weekly check-in: {goal_title}"
  description_template: "Plan this week's outreach for {goal_title}."
  priority: medium
  estimated_duration_minutes: 10
  trigger_conditions: {trigger: scheduled, condition: monday}

quarterly_relationship_audit:
  action_type: relationship_audit
  title_template: "Q{quarter} {year} relationship audit"
  description_template: "Review the relationships supporting {goal_title}. Who needs attention this quarter?"
  priority: high
  estimated_duration_minutes: 45
  trigger_conditions: {trigger: scheduled, condition: first_day_of_quarter}
"""


def ensure_config_dir() -> Path:
    """Ensure the config directory exists."""
    DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return DEFAULT_CONFIG_DIR


def expand_env_vars(value: str) -> str:
    """Expand environment variables in a string.

    Supports:
    - ${env:VAR_NAME} - environment variable
    - $VAR_NAME or ${VAR_NAME} - standard env var expansion
    """
    def replace_env(match: re.Match[str]) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    value = re.sub(r"\$\{env:([^}]+)\}", replace_env, value)
    return os.path.expandvars(value)


def _expand_tree(data: Any) -> Any:
    if isinstance(data, str):
        return expand_env_vars(data)
    if isinstance(data, dict):
        return {k: _expand_tree(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_tree(v) for v in data]
    return data


def load_yaml_file(path: Path) -> dict:
    """Load a YAML file."""
    if not path.exists():
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Invalid YAML in {path}: expected a mapping, got {type(data).__name__}")

    return data


def load_config(config_path: Path | None = None) -> FollowthruConfig:
    """Load the main Followthru configuration."""
    path = config_path or DEFAULT_CONFIG_FILE

    if not path.exists():
        logger.info(f"Config file not found at {path}, using defaults")
        return FollowthruConfig()

    try:
        data = _expand_tree(load_yaml_file(path))
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse config file {path}: {e}") from e

    try:
        config = FollowthruConfig.model_validate(data)
        logger.debug(f"Loaded config from {path}")
        return config
    except Exception as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e


def resolve_db_path(config: FollowthruConfig) -> Path:
    """Database path from config, falling back to the default location."""
    if config.db_path:
        return Path(os.path.expanduser(expand_env_vars(config.db_path)))
    return DEFAULT_DB_FILE


def load_templates(templates_path: Path | None = None) -> list[ActionTemplate]:
    """Load action templates.

    Templates are keyed by template_key at the top level of the YAML file.
    Without a file the built-in defaults are used.

    Args:
        templates_path: Optional path to a templates YAML file

    Returns:
        List of ActionTemplate
    """
    if templates_path is not None and templates_path.exists():
        try:
            data = load_yaml_file(templates_path)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse templates file {templates_path}: {e}") from e
        source = str(templates_path)
    else:
        data = yaml.safe_load(DEFAULT_TEMPLATES_YAML)
        source = "built-in defaults"

    templates: list[ActionTemplate] = []
    for template_key, body in data.items():
        if not isinstance(body, dict):
            raise ConfigError(f"Template '{template_key}' in {source} is not a mapping")
        try:
            templates.append(ActionTemplate.model_validate({
                "id": body.get("id", f"tpl_{template_key}"),
                "template_key": template_key,
                **{k: v for k, v in body.items() if k != "id"},
            }))
        except Exception as e:
            raise ConfigError(f"Invalid template '{template_key}' in {source}: {e}") from e

    logger.debug(f"Loaded {len(templates)} templates from {source}")
    return templates


def create_default_config() -> None:
    """Create default configuration files."""
    ensure_config_dir()

    if not DEFAULT_CONFIG_FILE.exists():
        default_config = """\
# Followthru Configuration

daemon:
  host: 127.0.0.1
  port: 9877
  log_level: INFO

api:
  auth:
    enabled: false
    # token: ${env:FOLLOWTHRU_API_TOKEN}
  cors_origins: ["*"]

generator:
  timezone: UTC
  on_unresolved_placeholder: skip  # warn | skip | error
  dedup:
    enabled: true
    window_hours: 24
  max_weekly_goals: 3
"""
        DEFAULT_CONFIG_FILE.write_text(default_config)
        logger.info(f"Created default config at {DEFAULT_CONFIG_FILE}")

    if not DEFAULT_TEMPLATES_FILE.exists():
        DEFAULT_TEMPLATES_FILE.write_text(DEFAULT_TEMPLATES_YAML)
        logger.info(f"Created default templates at {DEFAULT_TEMPLATES_FILE}")
