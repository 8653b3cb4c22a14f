"""health command: check the analysis provider before running a review."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape

console = Console()


def _mark(ok: bool) -> str:
    return "[green]ok[/green]" if ok else "[red]unavailable[/red]"


@click.command("health")
@click.option(
    "--provider",
    type=click.Choice(["ollama", "openai", "anthropic"]),
    default=None,
    help="Analysis provider. Overrides config file.",
)
@click.option("--model", "model_name", default=None, help="Model to look for. Defaults to the provider's default.")
@click.pass_context
def health_cmd(ctx, provider: str | None, model_name: str | None):
    """Check that the analysis provider answers and serves the model.

    Exits with status 1 when either check fails.
    """
    from revlens_core.orchestrator import ReviewOrchestrator, get_analyzer
    from revlens_core.sources import GitFileSource

    config = dict(ctx.obj["config"])
    if provider:
        config["provider"] = provider
    try:
        analyzer = get_analyzer(config)
    except (ValueError, ImportError) as e:
        raise click.ClickException(str(e))

    store = ctx.obj["store"]
    orchestrator = ReviewOrchestrator(GitFileSource(), store, store, analyzer)
    model = model_name or config.get("model_name") or analyzer.DEFAULT_MODEL
    health = orchestrator.check_health(model)

    console.print(f"Provider [bold]{escape(config['provider'])}[/bold]: {_mark(health['analysis_available'])}")
    console.print(f"Model    [bold]{escape(model)}[/bold]: {_mark(health['model_available'])}")
    if not (health["analysis_available"] and health["model_available"]):
        ctx.exit(1)
