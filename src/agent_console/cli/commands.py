"""CLI command implementations — the chat loop plus a few mailbox helpers."""

from __future__ import annotations

import asyncio
import logging

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from agent_console.agent.types import ToolCallRequest, TurnError
from agent_console.cli.session import ChatSession, build_registry
from agent_console.config import ConfigurationError, Settings
from agent_console.mail.auth import AuthCache
from agent_console.mail.gateway import DEFAULT_MAX_RESULTS, MailGateway, mailbox_factory
from agent_console.tools.registry import ToolRegistry
from agent_console.tools.web_search import WebSearch

logger = logging.getLogger(__name__)
console = Console()

_EXIT_WORDS = {"exit", "quit"}


# ── Rendering ──────────────────────────────────────────────────────────────────


def show_config_error(message: str) -> None:
    console.print(
        Panel(
            Text(message, style="red"),
            title="[yellow]Configuration Error[/yellow]",
            box=box.ROUNDED,
        )
    )


def show_error(message: str) -> None:
    console.print(Panel(Text(message, style="red"), title="[red]Error[/red]", box=box.ROUNDED))
    console.print()


def _tools_table(registry: ToolRegistry) -> Table:
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold blue")
    table.add_column("Tool", style="green", no_wrap=True)
    table.add_column("Description")
    for tool in registry:
        table.add_row(tool.name, tool.description)
    return table


def _show_header(session: ChatSession) -> None:
    console.rule("[bold blue]Agent Console[/bold blue]")
    console.print(f"[dim]Model: {session.settings.model}[/dim]\n")
    console.print(_tools_table(session.registry))
    if not session.settings.mail_enabled:
        console.print("[dim]Mail tools disabled: GRAPH_CLIENT_ID is not set.[/dim]")
    console.print("[dim]Type 'exit' to quit.[/dim]\n")


def _announce_tool(call: ToolCallRequest) -> None:
    mode = call.arguments.get("mode")
    suffix = f": {mode}" if mode else ""
    console.print(f"[dim][Tool] {call.name}{suffix}[/dim]")


# ── chat ───────────────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def chat(settings: Settings) -> None:
    """Start an interactive chat session (the default command)."""
    try:
        settings.require_chat()
    except ConfigurationError as exc:
        show_config_error(str(exc))
        raise SystemExit(1) from None
    asyncio.run(_chat_async(settings))


async def _chat_async(settings: Settings) -> None:
    session = ChatSession(settings, observer=_announce_tool)
    _show_header(session)
    try:
        while True:
            user_input = Prompt.ask("[yellow]You[/yellow]", console=console, default="", show_default=False)
            text = user_input.strip()
            if not text:
                continue
            if text.lower() in _EXIT_WORDS:
                break
            await _run_turn(session, text)
    except (EOFError, KeyboardInterrupt):
        console.print()
    finally:
        await session.aclose()
    console.print("[dim]Goodbye![/dim]")


async def _run_turn(session: ChatSession, text: str) -> None:
    try:
        with console.status("Thinking...", spinner="dots", spinner_style="blue"):
            result = await session.orchestrator.run_turn(text)
    except TurnError as exc:
        logger.warning("Turn failed: %s", exc)
        show_error(str(exc))
        return

    console.print(
        Panel(Text(result.text), title="[green]Agent[/green]", box=box.ROUNDED, border_style="green")
    )
    console.print()


# ── tools ──────────────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def tools(settings: Settings) -> None:
    """List the tools offered to the model."""
    registry = build_registry(MailGateway(mailbox_factory(settings)), WebSearch())
    console.print(_tools_table(registry))


# ── mail ───────────────────────────────────────────────────────────────────────


@click.command()
@click.argument("mode")
@click.argument("param1", required=False)
@click.argument("param2", required=False)
@click.argument("param3", required=False)
@click.option(
    "--max-results", default=DEFAULT_MAX_RESULTS, show_default=True, help="Max messages to list."
)
@click.pass_obj
def mail(
    settings: Settings,
    mode: str,
    param1: str | None,
    param2: str | None,
    param3: str | None,
    max_results: int,
) -> None:
    """Run one mailbox operation directly (also signs in on first use)."""
    result = asyncio.run(_mail_async(settings, mode, param1, param2, param3, max_results))
    console.print(result, markup=False, highlight=False)


async def _mail_async(
    settings: Settings,
    mode: str,
    param1: str | None,
    param2: str | None,
    param3: str | None,
    max_results: int,
) -> str:
    gateway = MailGateway(mailbox_factory(settings))
    try:
        return await gateway.run(mode, param1, param2, param3, max_results=max_results)
    finally:
        await gateway.aclose()


# ── logout ─────────────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def logout(settings: Settings) -> None:
    """Forget the cached mailbox sign-in."""
    removed = AuthCache(settings.auth_record_path).clear()
    token_cache = settings.token_cache_path
    if token_cache.exists():
        token_cache.unlink()
        removed = True
    if removed:
        console.print("[green]Signed out.[/green] The next mailbox call will prompt for login.")
    else:
        console.print("[yellow]No cached sign-in found.[/yellow]")
