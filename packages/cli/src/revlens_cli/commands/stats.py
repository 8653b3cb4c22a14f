"""stats command: aggregate review statistics for a project."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from revlens_cli.commands.review import SEVERITY_STYLE
from revlens_store.errors import RevlensError
from revlens_store.models import IssueFilter, IssueStatus, Severity

console = Console()


@click.command("stats")
@click.option("--project", "project_id", required=True, help="Project identifier.")
@click.option("--top", default=10, show_default=True, help="Number of most flagged files to show.")
@click.pass_context
def stats_cmd(ctx, project_id: str, top: int):
    """Show aggregated review statistics for a project.

    Reports run totals from the review history, plus the severity and
    status distribution of tracked issues and the files with the most
    active issues.
    """
    store = ctx.obj["store"]
    try:
        stats = store.get_review_stats(project_id)
        issues = store.list_issues(IssueFilter(project_id=project_id))
    except RevlensError as e:
        raise click.ClickException(str(e))

    if not stats.total_reviews and not issues:
        console.print("[yellow]No reviews or issues recorded for this project.[/yellow]")
        return

    # --- Summary ---
    console.print(f"\n[bold]Review stats for [cyan]{escape(project_id)}[/cyan][/bold]")
    console.print(f"  Total reviews:      {stats.total_reviews}")
    console.print(f"  Total issues found: {stats.total_issues_found}")
    console.print(f"  Avg duration:       {stats.average_duration_ms / 1000:.1f}s")
    if stats.last_review_at:
        console.print(f"  Last review:        {stats.last_review_at[:19].replace('T', ' ')}")

    active = [i for i in issues if i.status == IssueStatus.ACTIVE]
    status_counter = Counter(i.status for i in issues)
    severity_counter = Counter(i.severity for i in active)
    file_counter = Counter(i.file_path for i in active)

    # --- Issue status ---
    status_table = Table(title="Tracked Issues", show_header=True)
    status_table.add_column("Status", style="bold")
    status_table.add_column("Count", justify="right")
    for status in IssueStatus:
        status_table.add_row(status.value, str(status_counter.get(status, 0)))
    reappeared = sum(1 for i in issues if i.was_resolved_before)
    status_table.add_row("[yellow]reappeared[/yellow]", str(reappeared))
    console.print(status_table)

    # --- Severity breakdown ---
    if active:
        sev_table = Table(title="Active Issues by Severity", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of active", justify="right")
        for severity in Severity:
            count = severity_counter.get(severity, 0)
            style = SEVERITY_STYLE.get(severity.value, "white")
            sev_table.add_row(f"[{style}]{severity.value}[/{style}]", str(count), f"{count / len(active) * 100:.1f}%")
        console.print(sev_table)

    # --- Most flagged files ---
    if file_counter:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Active issues", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(escape(file_path), str(count))
        console.print(file_table)
