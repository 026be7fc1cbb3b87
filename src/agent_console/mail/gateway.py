"""Mailbox gateway — maps a small verb vocabulary onto Graph mail operations.

Every result is plain text so the orchestrator can hand it to the model like
any other tool output.  Nothing raises past ``MailGateway.run``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from agent_console.config import Settings
from agent_console.mail.auth import AuthCache, AuthenticationError, DeviceCodeCredential
from agent_console.mail.graph_client import GraphError, GraphMailClient
from agent_console.mail.types import (
    FOLDER_DELETED,
    FOLDER_INBOX,
    FOLDER_JUNK,
    MailMessage,
    resolve_folder,
)
from agent_console.tools.registry import ToolDeclaration, ToolParameter

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 10
MAX_RESULTS_LIMIT = 50
CLIENT_ID_ENV_VAR = "GRAPH_CLIENT_ID"

CONFIG_ERROR = (
    f"Error: Set {CLIENT_ID_ENV_VAR} environment variable. Register app at "
    "https://entra.microsoft.com with 'Personal Microsoft accounts' support."
)
UNKNOWN_MODE = "Unknown mode. Use: inbox, spam, folder, read, send, search, delete, move, junk"
NO_MESSAGES = "No messages found"

#: Produces the mailbox client on first use, or None when mail is not configured.
ClientFactory = Callable[[], Awaitable[GraphMailClient | None]]


@dataclass(frozen=True)
class MailRequest:
    """The raw parameters of one gateway call; meaning depends on the mode."""

    param1: str | None = None
    param2: str | None = None
    param3: str | None = None
    max_results: int = DEFAULT_MAX_RESULTS


MailHandler = Callable[[GraphMailClient, MailRequest], Awaitable[str]]


@dataclass(frozen=True)
class MailCommand:
    """One verb: its handler, the slots it requires, and how errors are labelled."""

    handler: MailHandler
    operation: Callable[[MailRequest], str]
    required: tuple[tuple[str, str], ...] = ()


# ── Formatting ─────────────────────────────────────────────────────────────────


def _format_date(message: MailMessage, missing: str = "Unknown") -> str:
    return message.received.strftime("%Y-%m-%d %H:%M") if message.received else missing


def format_messages(messages: list[MailMessage], folder: str | None = None) -> str:
    """Render a message listing: index, read marker, date, sender, subject, id."""
    lines: list[str] = []
    if folder is not None:
        lines.append(f"[{folder}]")
    for i, msg in enumerate(messages, start=1):
        marker = "✓" if msg.is_read else "●"
        lines.append(f"{i}. {marker} {_format_date(msg)} | {msg.sender or 'Unknown'}")
        lines.append(f"   {msg.subject}")
        lines.append(f"   ID: {msg.id}")
    return "\n".join(lines)


def format_full_message(msg: MailMessage) -> str:
    lines = [
        f"Subject: {msg.subject}",
        f"From: {msg.sender or ''}",
        f"Date: {_format_date(msg, missing='')}",
        f"To: {', '.join(msg.to)}",
        "",
        msg.body or "(No content)",
    ]
    return "\n".join(lines).rstrip()


# ── Handlers ───────────────────────────────────────────────────────────────────


async def _list_folder(client: GraphMailClient, folder: str, max_results: int) -> str:
    folder_id = resolve_folder(folder)
    messages = await client.list_folder(folder_id, top=max_results)
    if not messages:
        return f"{folder} folder is empty"
    return format_messages(messages, folder_id)


async def _inbox(client: GraphMailClient, req: MailRequest) -> str:
    return await _list_folder(client, FOLDER_INBOX, req.max_results)


async def _junk_folder(client: GraphMailClient, req: MailRequest) -> str:
    return await _list_folder(client, FOLDER_JUNK, req.max_results)


async def _named_folder(client: GraphMailClient, req: MailRequest) -> str:
    return await _list_folder(client, req.param1 or FOLDER_INBOX, req.max_results)


async def _read(client: GraphMailClient, req: MailRequest) -> str:
    message = await client.get_message(str(req.param1))
    return format_full_message(message) if message else "Message not found"


async def _send(client: GraphMailClient, req: MailRequest) -> str:
    to = str(req.param1).strip()
    await client.send_mail(to, str(req.param2), req.param3 or "")
    return f"Email sent to {to}"


async def _search(client: GraphMailClient, req: MailRequest) -> str:
    messages = await client.search(str(req.param1), top=req.max_results)
    return format_messages(messages) if messages else NO_MESSAGES


async def _delete(client: GraphMailClient, req: MailRequest) -> str:
    message_id = str(req.param1)
    await client.delete_message(message_id)
    return f"Deleted message {message_id[:8]}"


def _move_destination(req: MailRequest) -> str:
    # A blank destination means the default, same as a missing one.
    return resolve_folder(req.param2) if req.param2 and req.param2.strip() else FOLDER_DELETED


async def _move(client: GraphMailClient, req: MailRequest) -> str:
    message_id = str(req.param1)
    destination = _move_destination(req)
    await client.move_message(message_id, destination)
    return f"Moved message {message_id[:8]} to {destination}"


async def _junk(client: GraphMailClient, req: MailRequest) -> str:
    return await _move(client, MailRequest(param1=req.param1, param2=FOLDER_JUNK))


_MESSAGE_ID = ("param1", "Message ID required")

COMMANDS: dict[str, MailCommand] = {
    "inbox": MailCommand(_inbox, lambda r: f"listing {FOLDER_INBOX}"),
    "spam": MailCommand(_junk_folder, lambda r: f"listing {FOLDER_JUNK}"),
    "junkmail": MailCommand(_junk_folder, lambda r: f"listing {FOLDER_JUNK}"),
    "folder": MailCommand(_named_folder, lambda r: f"listing {r.param1 or FOLDER_INBOX}"),
    "read": MailCommand(_read, lambda r: "reading message", (_MESSAGE_ID,)),
    "send": MailCommand(
        _send,
        lambda r: "sending email",
        (("param1", "Recipient email required"), ("param2", "Subject required")),
    ),
    "search": MailCommand(_search, lambda r: "searching mail", (("param1", "Search query required"),)),
    "delete": MailCommand(_delete, lambda r: "deleting message", (_MESSAGE_ID,)),
    "move": MailCommand(_move, lambda r: f"moving to {_move_destination(r)}", (_MESSAGE_ID,)),
    "junk": MailCommand(_junk, lambda r: f"moving to {FOLDER_JUNK}", (_MESSAGE_ID,)),
}


# ── Gateway ────────────────────────────────────────────────────────────────────


class MailGateway:
    """Stateless verb dispatcher over one lazily-created mailbox client.

    The client handle belongs to this gateway instance; tests pass a factory
    that returns a fake client (or None to simulate missing configuration).

    Usage::

        gateway = MailGateway(mailbox_factory(settings))
        text = await gateway.run("inbox", max_results=5)
    """

    def __init__(self, client_factory: ClientFactory) -> None:
        self._client_factory = client_factory
        self._client: GraphMailClient | None = None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def run(
        self,
        mode: str | None,
        param1: str | None = None,
        param2: str | None = None,
        param3: str | None = None,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> str:
        """Execute one mailbox operation and return its text result."""
        logger.info("mail mode=%s", mode)
        try:
            client = await self._get_client()
        except AuthenticationError as exc:
            logger.warning("Mailbox sign-in failed: %s", exc)
            return f"Error authentication: {exc}"
        if client is None:
            return CONFIG_ERROR

        command = COMMANDS.get((mode or "").strip().lower())
        if command is None:
            return UNKNOWN_MODE

        request = MailRequest(
            param1=param1,
            param2=param2,
            param3=param3,
            max_results=max(1, min(max_results, MAX_RESULTS_LIMIT)),
        )
        for slot, message in command.required:
            value = getattr(request, slot)
            if value is None or not value.strip():
                return f"Error: {message}"

        try:
            return await command.handler(client, request)
        except GraphError as exc:
            logger.warning("Graph error %s: %s", command.operation(request), exc.message)
            return f"Error {command.operation(request)}: {exc.message}"
        except AuthenticationError as exc:
            logger.warning("Mailbox authentication failed: %s", exc)
            return f"Error authentication: {exc}"

    async def _get_client(self) -> GraphMailClient | None:
        if self._client is None:
            self._client = await self._client_factory()
        return self._client


def mailbox_factory(settings: Settings) -> ClientFactory:
    """Return a ClientFactory that signs in to Graph using the cached auth record.

    On first use with no saved record, a token is acquired eagerly so the
    interactive device-code login happens once and its record is persisted.
    A failed or declined login is not fatal: the client is still returned and
    later calls will prompt again.  A credential that cannot even be set up
    raises AuthenticationError, which MailGateway.run renders as text.
    """

    async def _connect() -> GraphMailClient | None:
        if not settings.mail_enabled:
            return None
        cache = AuthCache(settings.auth_record_path)
        record = cache.load()
        try:
            credential = DeviceCodeCredential(
                settings.graph_client_id,
                settings.graph_tenant_id,
                record=record,
                token_cache_path=settings.token_cache_path,
            )
        except (ValueError, OSError) as exc:
            raise AuthenticationError(f"Could not set up mailbox sign-in: {exc}") from exc
        client = GraphMailClient(credential, timeout=settings.graph_timeout)
        if record is None:
            try:
                new_record = await asyncio.to_thread(credential.authenticate)
            except AuthenticationError as exc:
                logger.warning("Mailbox sign-in did not complete: %s", exc)
            else:
                cache.save(new_record)
        return client

    return _connect


def mail_tool(gateway: MailGateway) -> ToolDeclaration:
    """Declare the mailbox gateway as the OutlookMail tool."""

    async def _handler(
        mode: str,
        param1: str | None = None,
        param2: str | None = None,
        param3: str | None = None,
        maxResults: int = DEFAULT_MAX_RESULTS,
    ) -> str:
        return await gateway.run(mode, param1, param2, param3, max_results=maxResults)

    return ToolDeclaration(
        name="OutlookMail",
        description=(
            "Access Outlook/Hotmail mailbox. Modes: 'inbox' (list inbox), 'spam' (list junk "
            "folder), 'folder' (list by name), 'read' (id), 'send' (to,subject,body), "
            "'search' (query), 'delete' (id), 'move' (id,folder), 'junk' (mark as junk). "
            f"Requires {CLIENT_ID_ENV_VAR}."
        ),
        handler=_handler,
        parameters=(
            ToolParameter(
                "mode",
                "string",
                "Operation: inbox, spam, folder, read, send, search, delete, move, junk.",
            ),
            ToolParameter(
                "param1",
                "string",
                "Message ID for read/delete/move/junk, recipient for send, "
                "query for search, folder name for folder.",
                required=False,
            ),
            ToolParameter(
                "param2",
                "string",
                "For send: subject. For move: destination folder (inbox, archive, deleted, junk, ...).",
                required=False,
            ),
            ToolParameter("param3", "string", "For send: body.", required=False),
            ToolParameter(
                "maxResults",
                "integer",
                "Max results for listings and search (1-50).",
                required=False,
                default=DEFAULT_MAX_RESULTS,
            ),
        ),
    )
