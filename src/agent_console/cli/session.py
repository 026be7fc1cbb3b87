"""ChatSession — wires the chat client, tools and mailbox gateway for one user."""

from __future__ import annotations

from agent_console.agent.chat_client import AnthropicChatClient, ChatClient
from agent_console.agent.orchestrator import ConversationOrchestrator, ToolObserver
from agent_console.config import Settings
from agent_console.mail.gateway import ClientFactory, MailGateway, mail_tool, mailbox_factory
from agent_console.tools.file_tools import FILE_TOOLS
from agent_console.tools.registry import ToolRegistry
from agent_console.tools.terminal import TERMINAL_TOOL
from agent_console.tools.web_search import WebSearch, web_search_tool


def build_registry(gateway: MailGateway, search: WebSearch) -> ToolRegistry:
    """The fixed tool set offered to the model, in display order."""
    return ToolRegistry([
        *FILE_TOOLS,
        TERMINAL_TOOL,
        web_search_tool(search),
        mail_tool(gateway),
    ])


class ChatSession:
    """Everything one conversation owns: history, mailbox client, HTTP clients.

    Nothing here is shared between sessions, so two sessions never see each
    other's history or mailbox credentials.

    Usage::

        session = ChatSession(Settings.from_env())
        result = await session.orchestrator.run_turn("what's in my inbox?")
        await session.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        chat: ChatClient | None = None,
        mail_factory: ClientFactory | None = None,
        observer: ToolObserver | None = None,
    ) -> None:
        self.settings = settings
        self.gateway = MailGateway(mail_factory or mailbox_factory(settings))
        self.web_search = WebSearch()
        self.registry = build_registry(self.gateway, self.web_search)
        self.chat = chat or AnthropicChatClient(
            settings.api_key,
            settings.model,
            base_url=settings.base_url,
            max_tokens=settings.max_tokens,
        )
        self.orchestrator = ConversationOrchestrator(
            self.chat,
            self.registry,
            turn_timeout=settings.turn_timeout,
            max_tool_rounds=settings.max_tool_rounds,
            observer=observer,
        )

    async def aclose(self) -> None:
        """Release network resources held by the session."""
        await self.gateway.aclose()
        await self.web_search.aclose()
        close = getattr(self.chat, "aclose", None)
        if close is not None:
            await close()
