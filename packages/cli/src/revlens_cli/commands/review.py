"""review command: run an orchestrated review over a local git working tree."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from revlens_core.catalog import DIMENSION_IDS, GUIDELINE_IDS
from revlens_core.errors import RevlensError
from revlens_core.models import ReviewResult
from revlens_store.models import sort_issues

console = Console()

SEVERITY_STYLE = {"error": "red", "warning": "yellow", "info": "blue"}


def _print_result(result: ReviewResult) -> None:
    meta = result.metadata
    if result.issues:
        table = Table(title="Issues found", show_header=True, header_style="bold cyan")
        table.add_column("File")
        table.add_column("Line", justify="right", width=6)
        table.add_column("Severity", width=9)
        table.add_column("Rule")
        table.add_column("Title", max_width=50)
        table.add_column("Reappeared", justify="center", width=10)
        for issue in sort_issues(result.issues):
            style = SEVERITY_STYLE.get(issue.severity.value, "white")
            table.add_row(
                escape(issue.file_path),
                str(issue.line_number),
                f"[{style}]{issue.severity.value}[/{style}]",
                escape(issue.rule_id),
                escape(issue.title),
                f"x{issue.resolution_count}" if issue.was_resolved_before else "",
            )
        console.print(table)

    console.print(
        f"\n[bold]{meta.files_count}[/bold] file(s) reviewed"
        + (f", [red]{len(meta.files_failed)} failed[/red]" if meta.files_failed else "")
        + (f", [yellow]{len(meta.files_skipped)} skipped (timeout)[/yellow]" if meta.files_skipped else "")
        + f" · [bold]{meta.total_issues}[/bold] issue(s)"
        + f" ({meta.new_issues} new, {meta.reappeared_issues} reappeared)"
        + f" · {meta.review_duration_ms / 1000:.1f}s with {escape(meta.model_used)}"
    )


@click.command("review")
@click.option("--project", "project_id", required=True, help="Project identifier the issues are tracked under.")
@click.option("--path", "repo_path", default=".", show_default=True, help="Path of the git working tree.")
@click.option("--user", "user_id", default="", envvar="REVLENS_USER", help="User the review is recorded for.")
@click.option(
    "--guideline",
    "guidelines",
    multiple=True,
    type=click.Choice(GUIDELINE_IDS),
    help="Coding guideline to check (repeatable). Overrides the stored configuration.",
)
@click.option(
    "--dimension",
    "dimensions",
    multiple=True,
    type=click.Choice(DIMENSION_IDS),
    help="Analysis dimension to enable (repeatable). Overrides the stored configuration.",
)
@click.option("--instructions", default=None, help="Custom project rules appended to the directive.")
@click.option("--model", "model_name", default=None, help="Model name. Overrides the stored configuration.")
@click.option(
    "--provider",
    type=click.Choice(["ollama", "openai", "anthropic"]),
    default=None,
    help="Analysis provider. Overrides config file.",
)
@click.option("--workers", "max_workers", type=int, default=None, help="Files analyzed in parallel.")
@click.option("--timeout", "timeout_seconds", type=float, default=None, help="Run budget in seconds.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON instead of a table.")
@click.pass_context
def review_cmd(
    ctx,
    project_id: str,
    repo_path: str,
    user_id: str,
    guidelines: tuple[str, ...],
    dimensions: tuple[str, ...],
    instructions: str | None,
    model_name: str | None,
    provider: str | None,
    max_workers: int | None,
    timeout_seconds: float | None,
    as_json: bool,
):
    """Review the modified files of a local git working tree.

    Every changed code file is analyzed, the issues found are tracked in the
    store, and previously resolved issues that come back are flagged as
    reappeared. Exits with status 1 when the run fails.

    \b
    Environment variables:
      OLLAMA_API_URL       Ollama endpoint (default http://localhost:11434/v1)
      OPENAI_API_KEY       Required when using --provider openai
      ANTHROPIC_API_KEY    Required when using --provider anthropic
    """
    from revlens_core.config import load_config, review_configuration
    from revlens_core.orchestrator import ReviewOptions, ReviewOrchestrator, get_analyzer
    from revlens_core.sources import GitFileSource

    overrides = {
        "guidelines": list(guidelines) or None,
        "dimensions": list(dimensions) or None,
        "custom_instructions": instructions,
        "model_name": model_name,
        "provider": provider,
        "max_workers": max_workers,
        "timeout_seconds": timeout_seconds,
    }
    config = load_config(ctx.obj["config_path"], cli_overrides=overrides)
    config["_explicit"] = [key for key, value in overrides.items() if value is not None]

    if config["provider"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")
    if config["provider"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")

    store = ctx.obj["store"]
    try:
        analyzer = get_analyzer(config)
        stored = store.get_config(project_id)
    except (ValueError, ImportError, RevlensError) as e:
        raise click.ClickException(str(e))

    review_config = review_configuration(config, project_id, user_id, stored, analyzer.DEFAULT_MODEL)
    orchestrator = ReviewOrchestrator(
        file_source=GitFileSource(repo_path, exclude=config.get("exclude")),
        ledger=store,
        history=store,
        analyzer=analyzer,
        options=ReviewOptions.from_config(config),
    )
    result = orchestrator.orchestrate_review(project_id, user_id, review_config)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)

    if not result.success:
        console.print(f"[red]Review failed: {escape(result.error or '')}[/red]")
        ctx.exit(1)
