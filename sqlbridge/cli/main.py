"""Main CLI entry point for SQLBridge."""

from __future__ import annotations

import logging

import click
from rich.panel import Panel
from rich.text import Text

from sqlbridge import __version__
from sqlbridge.cli.commands import register_commands
from sqlbridge.cli.commands.configuration import config_group
from sqlbridge.cli.commands.database import db_group
from sqlbridge.cli.utils import console
from sqlbridge.config import EnvironmentSettings
from sqlbridge.logging_config import setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--connection", help="Connection name")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    config: str,
    connection: str,
    verbose: bool,
) -> None:
    """SQLBridge - asynchronous MySQL connection toolkit."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "connection": connection,
            "verbose": verbose,
        }
    )
    setup_logging(logging.DEBUG if verbose else EnvironmentSettings().log_level)

    if version:
        console.print(f"SQLBridge v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        show_dashboard()


COMMAND_REGISTRY = [
    db_group,
    config_group,
]

register_commands(cli, COMMAND_REGISTRY)


def show_dashboard() -> None:
    """Display the main dashboard."""
    title = Text("SQLBridge", style="bold blue")
    subtitle = Text("Asynchronous MySQL connection toolkit", style="italic")

    dashboard_content = Text()
    dashboard_content.append("🔌 Test Connections      sqlbridge db test\n", style="bold")
    dashboard_content.append("🔍 Run Queries           sqlbridge db query\n", style="bold")
    dashboard_content.append("📋 Describe Tables       sqlbridge db describe\n", style="bold")
    dashboard_content.append("📜 Run Scripts           sqlbridge db run\n", style="bold")
    dashboard_content.append("⚙️  Configure Settings    sqlbridge config\n", style="bold")
    dashboard_content.append("\nRun 'sqlbridge --help' for available commands", style="dim")

    panel = Panel(
        dashboard_content,
        title=title,
        subtitle=subtitle,
        border_style="blue",
        padding=(1, 2),
    )

    console.print(panel)


if __name__ == "__main__":
    cli()
