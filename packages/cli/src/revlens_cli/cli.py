"""CLI entry point for revlens.

Commands:
  review: review the modified files of a local git working tree
  issues: list and manage tracked issues (add, resolve, dismiss, ...)
  config: show or change a project's stored review configuration
  history: display past review runs for a project
  stats: aggregate review statistics for a project
  health: check that the analysis provider and model are reachable
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
import yaml

from revlens_cli.commands.config_cmd import config_cmd
from revlens_cli.commands.health import health_cmd
from revlens_cli.commands.history import history_cmd
from revlens_cli.commands.issues import issues_cmd
from revlens_cli.commands.review import review_cmd
from revlens_cli.commands.stats import stats_cmd
from revlens_store.errors import PersistenceFailure


def _build_store(config: dict):
    """Open the SQLite store named by ``store_path`` in the configuration.

    This factory lives in cli.py so neither revlens_core nor revlens_store
    know about the CLI config format.
    """
    from revlens_store.sqlite import SQLiteStore

    return SQLiteStore(db_path=config.get("store_path") or ".revlens.db")


@click.group()
@click.version_option(
    version=importlib.metadata.version("revlens"),
    prog_name="revlens",
)
@click.option(
    "--config",
    "config_path",
    default=".revlens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="REVLENS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Code review orchestration with issue lifecycle tracking."""
    from revlens_core.config import load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise click.UsageError(f"Could not load {config_path}: {e}")

    try:
        store = _build_store(config)
    except PersistenceFailure as e:
        raise click.UsageError(str(e))
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(issues_cmd)
main.add_command(config_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
main.add_command(health_cmd)
