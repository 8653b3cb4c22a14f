"""issues commands: inspect and manage the issue ledger."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from revlens_cli.commands.review import SEVERITY_STYLE
from revlens_store.errors import RevlensError
from revlens_store.models import Category, Issue, IssueFilter, IssueStatus, Severity

console = Console()

_STATUS_STYLE = {"active": "bold", "resolved": "green", "dismissed": "dim"}


def _print_issue(issue: Issue) -> None:
    style = SEVERITY_STYLE.get(issue.severity.value, "white")
    console.print(
        f"[bold cyan]{escape(issue.file_path)}[/bold cyan]:{issue.line_number}  "
        f"[{style}]{issue.severity.value.upper()}[/{style}]  {escape(issue.rule_id)}  ({issue.status.value})"
    )
    console.print(f"  [bold]{escape(issue.title)}[/bold]")
    if issue.description:
        console.print(f"  {escape(issue.description)}")
    if issue.suggestion:
        console.print(f"  [green]Suggestion:[/green] {escape(issue.suggestion)}")
    if issue.code_snippet:
        console.print(f"  [dim]{escape(issue.code_snippet)}[/dim]")
    if issue.was_resolved_before:
        console.print(f"  [yellow]Reappeared after {issue.resolution_count} resolution(s).[/yellow]")
    console.print(f"  [dim]id {issue.id} · first seen {issue.first_detected_at[:19].replace('T', ' ')}[/dim]")


@click.group("issues")
def issues_cmd():
    """List and manage tracked issues."""


@issues_cmd.command("list")
@click.option("--project", "project_id", required=True, help="Project identifier.")
@click.option("--status", type=click.Choice([s.value for s in IssueStatus]), default=None, help="Filter by status.")
@click.option("--severity", type=click.Choice([s.value for s in Severity]), default=None, help="Filter by severity.")
@click.option("--category", type=click.Choice([c.value for c in Category]), default=None, help="Filter by category.")
@click.option("--file", "file_path", default=None, help="Only issues in this file.")
@click.pass_context
def list_issues(ctx, project_id: str, status: str | None, severity: str | None, category: str | None, file_path):
    """List issues for a project, most severe first."""
    filters = IssueFilter(
        project_id=project_id,
        status=IssueStatus(status) if status else None,
        severity=Severity(severity) if severity else None,
        category=Category(category) if category else None,
        file_path=file_path,
    )
    try:
        issues = ctx.obj["store"].list_issues(filters)
    except RevlensError as e:
        raise click.ClickException(str(e))

    if not issues:
        console.print("[yellow]No issues found.[/yellow]")
        return

    table = Table(title=f"Issues: {escape(project_id)}", show_header=True, header_style="bold cyan")
    table.add_column("ID", no_wrap=True)
    table.add_column("File")
    table.add_column("Line", justify="right", width=6)
    table.add_column("Severity", width=9)
    table.add_column("Category", width=13)
    table.add_column("Rule")
    table.add_column("Title", max_width=40)
    table.add_column("Status", width=10)
    for issue in issues:
        sev_style = SEVERITY_STYLE.get(issue.severity.value, "white")
        status_style = _STATUS_STYLE.get(issue.status.value, "white")
        table.add_row(
            issue.id,
            escape(issue.file_path),
            str(issue.line_number),
            f"[{sev_style}]{issue.severity.value}[/{sev_style}]",
            issue.category.value,
            escape(issue.rule_id),
            escape(issue.title),
            f"[{status_style}]{issue.status.value}[/{status_style}]",
        )
    console.print(table)


@issues_cmd.command("show")
@click.argument("issue_id")
@click.pass_context
def show_issue(ctx, issue_id: str):
    """Show one issue in full."""
    try:
        issue = ctx.obj["store"].get_issue(issue_id)
    except RevlensError as e:
        raise click.ClickException(str(e))
    _print_issue(issue)


@issues_cmd.command("add")
@click.option("--project", "project_id", required=True, help="Project identifier.")
@click.option("--file", "file_path", required=True, help="File the issue is in.")
@click.option("--line", "line_number", type=click.IntRange(min=1), required=True, help="1-based line number.")
@click.option("--rule", "rule_id", required=True, help="Rule identifier, e.g. SQL-INJECTION.")
@click.option("--title", required=True, help="One-line summary.")
@click.option("--description", default="", help="Longer explanation.")
@click.option("--severity", type=click.Choice([s.value for s in Severity]), default="warning", show_default=True)
@click.option("--category", type=click.Choice([c.value for c in Category]), default="linting", show_default=True)
@click.option("--suggestion", default=None, help="How to fix it.")
@click.option("--user", "user_id", default="", envvar="REVLENS_USER", help="User recording the issue.")
@click.pass_context
def add_issue(
    ctx, project_id, file_path, line_number, rule_id, title, description, severity, category, suggestion, user_id
):
    """Record an issue by hand."""
    issue = Issue(
        project_id=project_id,
        user_id=user_id,
        file_path=file_path,
        line_number=line_number,
        severity=Severity(severity),
        category=Category(category),
        rule_id=rule_id,
        title=title,
        description=description,
        suggestion=suggestion,
        is_manual=True,
    )
    try:
        issue = ctx.obj["store"].insert_issue(issue)
    except RevlensError as e:
        raise click.ClickException(str(e))
    console.print(f"[green]Recorded issue {issue.id}.[/green]")


@issues_cmd.command("edit")
@click.argument("issue_id")
@click.option("--title", default=None)
@click.option("--description", default=None)
@click.option("--suggestion", default=None)
@click.option("--severity", type=click.Choice([s.value for s in Severity]), default=None)
@click.option("--category", type=click.Choice([c.value for c in Category]), default=None)
@click.pass_context
def edit_issue(ctx, issue_id: str, **options):
    """Change the description fields of an issue."""
    fields = {key: value for key, value in options.items() if value is not None}
    if not fields:
        raise click.UsageError("Nothing to change. Pass at least one of --title, --description, ...")
    if "severity" in fields:
        fields["severity"] = Severity(fields["severity"])
    if "category" in fields:
        fields["category"] = Category(fields["category"])
    try:
        issue = ctx.obj["store"].update_issue(issue_id, **fields)
    except (RevlensError, ValueError) as e:
        raise click.ClickException(str(e))
    _print_issue(issue)


@issues_cmd.command("resolve")
@click.argument("issue_id")
@click.option("--user", "user_id", default="", envvar="REVLENS_USER", help="User resolving the issue.")
@click.pass_context
def resolve_issue(ctx, issue_id: str, user_id: str):
    """Mark an active issue as resolved."""
    try:
        issue = ctx.obj["store"].mark_resolved(issue_id, user_id)
    except RevlensError as e:
        raise click.ClickException(str(e))
    location = f"{escape(issue.file_path)}:{issue.line_number}"
    console.print(f"[green]Resolved {escape(issue.rule_id)} at {location}.[/green]")


@issues_cmd.command("dismiss")
@click.argument("issue_id")
@click.pass_context
def dismiss_issue(ctx, issue_id: str):
    """Dismiss an active issue as not worth fixing."""
    try:
        issue = ctx.obj["store"].mark_dismissed(issue_id)
    except RevlensError as e:
        raise click.ClickException(str(e))
    console.print(f"Dismissed {escape(issue.rule_id)} at {escape(issue.file_path)}:{issue.line_number}.")


@issues_cmd.command("delete")
@click.argument("issue_id")
@click.confirmation_option(prompt="Delete this issue permanently?")
@click.pass_context
def delete_issue(ctx, issue_id: str):
    """Delete an issue permanently."""
    try:
        ctx.obj["store"].delete_issue(issue_id)
    except RevlensError as e:
        raise click.ClickException(str(e))
    console.print(f"Deleted issue {escape(issue_id)}.")
