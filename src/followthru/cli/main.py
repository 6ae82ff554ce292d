"""Followthru CLI application."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from followthru import __version__
from followthru.config import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_TEMPLATES_FILE,
    create_default_config,
    load_config,
    load_templates,
    resolve_db_path,
)
from followthru.core.context import parse_context
from followthru.core.generator import SystemActionGenerator
from followthru.core.suggestions import (
    generate_goal_action_suggestions,
    generate_relationship_suggestions,
    plan_bulk_actions,
)
from followthru.db import Database
from followthru.errors import FollowthruError
from followthru.models import FollowthruConfig

# Initialize
app = typer.Typer(
    name="followthru",
    help="Followthru - follow-up actions for relationship management",
    no_args_is_help=True,
)
console = Console()

# Sub-commands
templates_app = typer.Typer(help="Action template management")
app.add_typer(templates_app, name="templates")

PRIORITY_STYLES = {
    "urgent": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "dim",
}


def setup_logging(verbose: bool = False, level: str | None = None) -> None:
    """Setup logging configuration.

    ``--verbose`` wins over the configured ``daemon.log_level``.
    """
    logger.remove()

    level = "DEBUG" if verbose else (level or "INFO").upper()

    # Console logging
    logger.add(
        sys.stderr,
        format="<level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level,
        colorize=True,
    )


def _load() -> tuple[FollowthruConfig, Database]:
    try:
        config = load_config()
        db = Database(resolve_db_path(config))
    except FollowthruError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    return config, db


def _priority(value: str) -> str:
    style = PRIORITY_STYLES.get(value, "")
    return f"[{style}]{value}[/{style}]" if style else value


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            console.print(f"[red]Invalid --var '{pair}', expected key=value[/red]")
            raise typer.Exit(1)
        key, value = pair.split("=", 1)
        variables[key.strip()] = value
    return variables


# ============================================================================
# Setup Commands
# ============================================================================


@app.command("init")
def init_config(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Create default configuration and seed the action templates."""
    setup_logging(verbose)
    create_default_config()
    config, db = _load()

    templates = load_templates(DEFAULT_TEMPLATES_FILE)
    for template in templates:
        db.save_template(template)

    console.print(f"[green]✓ Created configuration at {DEFAULT_CONFIG_DIR}[/green]")
    console.print(f"[green]✓ Seeded {len(templates)} templates into {db.db_path}[/green]")


@app.command("version")
def version() -> None:
    """Show version."""
    console.print(f"Followthru v{__version__}")


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: from config)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Run the HTTP API that exposes the generator."""
    setup_logging(verbose)
    config, db = _load()
    setup_logging(verbose, config.daemon.log_level)

    if host:
        config.daemon.host = host
    if port:
        config.daemon.port = port

    from followthru.api.server import run_server

    generator = SystemActionGenerator(db, config.generator)
    console.print(f"[green]Serving on http://{config.daemon.host}:{config.daemon.port}[/green]")
    try:
        asyncio.run(run_server(generator, config))
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")


# ============================================================================
# Generation Commands
# ============================================================================


@app.command("generate")
def generate(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    trigger: str = typer.Option(..., "--trigger", "-t", help="Trigger type"),
    goal: Optional[str] = typer.Option(None, "--goal", "-g", help="Goal ID"),
    contact: Optional[str] = typer.Option(None, "--contact", "-c", help="Contact ID"),
    artifact: Optional[str] = typer.Option(None, "--artifact", "-a", help="Artifact ID (artifact_processing)"),
    template: Optional[str] = typer.Option(None, "--template", help="Template key (manual)"),
    var: list[str] = typer.Option([], "--var", help="Template variable key=value (manual, repeatable)"),
    skip: list[str] = typer.Option(
        [], "--skip", help="Metadata flag to set, e.g. skipMonthlyReview (repeatable)"
    ),
    remote: bool = typer.Option(False, "--remote", help="Call a running server instead of the local store"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Generate follow-up actions for a trigger context."""
    setup_logging(verbose)

    metadata: dict = {flag: True for flag in skip}
    if artifact:
        metadata["artifactId"] = artifact
    if template:
        metadata["templateKey"] = template
    if var:
        metadata["variables"] = _parse_vars(var)

    payload: dict = {"userId": user, "triggerType": trigger, "metadata": metadata}
    if goal:
        payload["goalId"] = goal
    if contact:
        payload["contactId"] = contact

    if remote:
        from followthru.cli.client import APIClient

        try:
            with APIClient() as client:
                response = client.generate(payload)
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)

        if not response.get("success"):
            console.print(f"[red]Error: {response.get('error')}[/red]")
            raise typer.Exit(1)
        _print_actions(response["actions"], response.get("skipped", []), response.get("message"))
        return

    config, db = _load()
    try:
        context = parse_context(payload)
        result = SystemActionGenerator(db, config.generator).generate(context)
    except FollowthruError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    message = None
    if result.duplicate:
        message = "Actions were already generated for this context today"
    _print_actions(
        [a.model_dump(mode="json") for a in result.emitted],
        [s.model_dump(mode="json") for s in result.skipped],
        message,
    )


def _print_actions(actions: list[dict], skipped: list[dict], message: str | None) -> None:
    if message:
        console.print(f"[yellow]{message}[/yellow]")

    if actions:
        table = Table(title=f"Generated Actions ({len(actions)})")
        table.add_column("ID", justify="right")
        table.add_column("Trigger", style="cyan")
        table.add_column("Title")
        table.add_column("Priority")
        table.add_column("Due")

        for action in actions:
            table.add_row(
                str(action.get("id") or "-"),
                action["generation_trigger"],
                action["title"],
                _priority(action["priority"]),
                action["due_date"][:10],
            )
        console.print(table)
    elif not message:
        console.print("[yellow]No actions needed for this context[/yellow]")

    for skip in skipped:
        detail = f" ({skip['detail']})" if skip.get("detail") else ""
        console.print(f"[dim]skipped {skip['key']}: {skip['reason']}{detail}[/dim]")


@app.command("history")
def history(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show"),
) -> None:
    """Show the generation history of a user."""
    setup_logging()
    _, db = _load()

    rows = db.get_history(user, limit=limit)
    if not rows:
        console.print("[yellow]No generation history[/yellow]")
        return

    table = Table(title=f"Generation History - {user}")
    table.add_column("When")
    table.add_column("Trigger", style="cyan")
    table.add_column("Goal")
    table.add_column("Contact")
    table.add_column("Actions", justify="right")

    for row in rows:
        table.add_row(
            row.created_at.isoformat()[:16].replace("T", " "),
            row.trigger_type.value,
            row.goal_id or "-",
            row.contact_id or "-",
            str(row.actions_generated),
        )
    console.print(table)


# ============================================================================
# Suggestion Commands
# ============================================================================


@app.command("suggest")
def suggest(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    goals: bool = typer.Option(False, "--goals", help="Goal-target suggestions instead of relationship ones"),
    apply: list[str] = typer.Option([], "--apply", help="Suggestion ID to turn into an action (repeatable)"),
    limit: int = typer.Option(25, "--limit", "-n", help="Rows to show"),
) -> None:
    """Score bulk suggestions over a user's contact graph."""
    setup_logging()
    _, db = _load()

    contacts = db.get_contacts(user)
    relationships = db.get_network_relationships(user)

    if goals:
        suggestions = generate_goal_action_suggestions(
            db.get_goals(user), db.get_goal_targets(user), contacts, relationships
        )
    else:
        suggestions = generate_relationship_suggestions(contacts, relationships, user)

    if not suggestions:
        console.print("[yellow]No suggestions[/yellow]")
        return

    table = Table(title=f"Suggestions ({len(suggestions)})")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Confidence", justify="right")
    table.add_column("Priority")

    for suggestion in suggestions[:limit]:
        table.add_row(
            suggestion.id,
            suggestion.type.value,
            suggestion.title,
            f"{suggestion.confidence:.0f}",
            _priority(suggestion.priority),
        )
    console.print(table)

    if apply:
        plan = plan_bulk_actions(suggestions, apply)
        for action in plan.actions:
            console.print(f"[green]✓ {action.type}: {action.title}[/green] [dim]({action.id})[/dim]")
        for skip in plan.skipped:
            console.print(f"[yellow]! {skip.key} cannot become an action ({skip.detail})[/yellow]")


# ============================================================================
# Template Commands
# ============================================================================


@templates_app.command("list")
def templates_list(
    all_templates: bool = typer.Option(False, "--all", help="Include inactive templates"),
) -> None:
    """List templates stored in the database."""
    setup_logging()
    _, db = _load()

    templates = db.get_templates(active_only=not all_templates)
    if not templates:
        console.print("[yellow]No templates. Run 'followthru init' to seed the defaults.[/yellow]")
        return

    table = Table(title="Action Templates")
    table.add_column("Key", style="cyan")
    table.add_column("Type")
    table.add_column("Priority")
    table.add_column("Minutes", justify="right")
    table.add_column("Trigger")

    for template in templates:
        key = template.template_key if template.active else f"[dim]{template.template_key}[/dim]"
        table.add_row(
            key,
            template.action_type,
            _priority(template.priority.value),
            str(template.estimated_duration_minutes),
            str(template.trigger_conditions.get("trigger", "-")),
        )
    console.print(table)


@templates_app.command("seed")
def templates_seed(
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Templates YAML (default: built-in)"),
) -> None:
    """Load templates from YAML into the database."""
    setup_logging()
    _, db = _load()

    try:
        templates = load_templates(file)
    except FollowthruError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    for template in templates:
        db.save_template(template)
    console.print(f"[green]✓ Saved {len(templates)} templates[/green]")


# ============================================================================
# Entry Point
# ============================================================================


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
