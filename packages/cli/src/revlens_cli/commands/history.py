"""history command: display past review runs from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from revlens_store.errors import RevlensError

console = Console()


@click.command("history")
@click.option("--project", "project_id", required=True, help="Project identifier.")
@click.option("--limit", default=10, show_default=True, help="Maximum number of runs to show.")
@click.pass_context
def history_cmd(ctx, project_id: str, limit: int):
    """Show past review runs for a project, most recent first."""
    try:
        entries = ctx.obj["store"].list_history(project_id, limit=limit)
    except RevlensError as e:
        raise click.ClickException(str(e))

    if not entries:
        console.print("[yellow]No review runs recorded for this project.[/yellow]")
        return

    table = Table(title=f"Review History: {escape(project_id)}", show_header=True, header_style="bold cyan")
    table.add_column("Reviewed At", width=20)
    table.add_column("User")
    table.add_column("Model")
    table.add_column("Files", justify="right", width=6)
    table.add_column("Issues", justify="right", width=7)
    table.add_column("New", justify="right", width=5)
    table.add_column("Reappeared", justify="right", width=10)
    table.add_column("Duration", justify="right", width=9)

    for entry in entries:
        table.add_row(
            entry.created_at[:19].replace("T", " "),
            escape(entry.user_id) or "[dim]-[/dim]",
            escape(entry.model_used),
            str(entry.files_count),
            str(entry.total_issues),
            str(entry.new_issues),
            f"[yellow]{entry.reappeared_issues}[/yellow]" if entry.reappeared_issues else "0",
            f"{entry.review_duration_ms / 1000:.1f}s",
        )

    console.print(table)
