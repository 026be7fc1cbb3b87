"""CLI entry point for the console agent."""

import logging

import click
from dotenv import load_dotenv

from agent_console.config import ConfigurationError, Settings

logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Interactive agent with filesystem, terminal, web search and Outlook mail tools."""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,  # keep chat output clean
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    try:
        ctx.obj = Settings.from_env()
    except ConfigurationError as exc:
        show_config_error(str(exc))
        ctx.exit(1)
    if ctx.invoked_subcommand is None:
        ctx.invoke(chat)


# Import and register commands after cli is defined to avoid circular imports.
from agent_console.cli.commands import chat, logout, mail, show_config_error, tools  # noqa: E402

cli.add_command(chat)
cli.add_command(tools)
cli.add_command(mail)
cli.add_command(logout)
