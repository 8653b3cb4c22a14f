"""config commands: the per-project review configuration kept in the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from revlens_core.catalog import DIMENSION_IDS, GUIDELINE_IDS
from revlens_store.errors import RevlensError
from revlens_store.models import ReviewConfiguration

console = Console()


def _provider_default_model(config: dict) -> str:
    from revlens_core.orchestrator import default_model

    try:
        return default_model(config)
    except ValueError as e:
        raise click.ClickException(str(e))


def _print_config(config: ReviewConfiguration, stored: bool) -> None:
    table = Table(title=f"Review configuration: {escape(config.project_id)}", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Guidelines", escape(", ".join(config.enabled_guidelines)) or "[dim]none[/dim]")
    table.add_row("Dimensions", escape(", ".join(config.enabled_dimensions)) or "[dim]none[/dim]")
    table.add_row("Model", escape(config.model_name))
    table.add_row("Custom instructions", escape(config.custom_instructions or "") or "[dim]none[/dim]")
    if stored:
        table.add_row("Updated", (config.updated_at or "")[:19].replace("T", " "))
    console.print(table)
    if not stored:
        console.print("[dim]Not saved yet; these are the defaults from the config file.[/dim]")


@click.group("config")
def config_cmd():
    """Show or change a project's review configuration."""


@config_cmd.command("show")
@click.option("--project", "project_id", required=True, help="Project identifier.")
@click.pass_context
def show_config(ctx, project_id: str):
    """Show the configuration the next review of a project will use."""
    from revlens_core.config import review_configuration

    try:
        stored = ctx.obj["store"].get_config(project_id)
    except RevlensError as e:
        raise click.ClickException(str(e))
    default = _provider_default_model(ctx.obj["config"])
    config = review_configuration(ctx.obj["config"], project_id, stored=stored, default_model=default)
    _print_config(config, stored is not None)


@config_cmd.command("set")
@click.option("--project", "project_id", required=True, help="Project identifier.")
@click.option("--guideline", "guidelines", multiple=True, type=click.Choice(GUIDELINE_IDS), help="Repeatable.")
@click.option("--dimension", "dimensions", multiple=True, type=click.Choice(DIMENSION_IDS), help="Repeatable.")
@click.option("--instructions", default=None, help="Custom project rules. Pass an empty string to clear.")
@click.option("--model", "model_name", default=None, help="Model name.")
@click.option("--user", "user_id", default="", envvar="REVLENS_USER", help="User saving the configuration.")
@click.pass_context
def set_config(ctx, project_id: str, guidelines, dimensions, instructions, model_name, user_id: str):
    """Save a project's configuration. Options not given keep their current value."""
    from revlens_core.config import review_configuration

    store = ctx.obj["store"]
    default = _provider_default_model(ctx.obj["config"])
    try:
        current = review_configuration(
            ctx.obj["config"], project_id, user_id, stored=store.get_config(project_id), default_model=default
        )
        config = ReviewConfiguration(
            project_id=project_id,
            user_id=user_id,
            enabled_guidelines=guidelines or current.enabled_guidelines,
            enabled_dimensions=dimensions or current.enabled_dimensions,
            custom_instructions=current.custom_instructions if instructions is None else (instructions or None),
            model_name=model_name or current.model_name,
        )
        saved = store.save_config(config)
    except RevlensError as e:
        raise click.ClickException(str(e))
    _print_config(saved, stored=True)


@config_cmd.command("reset")
@click.option("--project", "project_id", required=True, help="Project identifier.")
@click.pass_context
def reset_config(ctx, project_id: str):
    """Forget a project's saved configuration."""
    try:
        ctx.obj["store"].delete_config(project_id)
    except RevlensError as e:
        raise click.ClickException(str(e))
    console.print(f"Configuration for {escape(project_id)} reset to defaults.")
