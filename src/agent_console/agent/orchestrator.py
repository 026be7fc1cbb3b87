"""Core agent loop — drives one user turn through model calls and tool dispatch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from agent_console.agent.chat_client import ChatClient
from agent_console.agent.types import (
    Message,
    ToolCallRequest,
    ToolRoundLimitError,
    TurnResult,
    TurnTimeoutError,
)
from agent_console.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TURN_TIMEOUT_SECONDS = 120.0
DEFAULT_MAX_TOOL_ROUNDS = 40
NO_RESPONSE = "[No response]"

#: Called just before each tool runs (the CLI uses it to show progress).
ToolObserver = Callable[[ToolCallRequest], None]


class TurnState(str, Enum):
    """Where the orchestrator is within the current turn."""

    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    TOOL_DISPATCH = "tool_dispatch"
    TERMINAL = "terminal"


class ConversationOrchestrator:
    """Owns the conversation history and runs the tool-calling loop.

    Each call to ``run_turn`` appends the user message, then alternates
    between asking the model for its next message and executing the tools it
    requests, until the model answers without tool calls.

    A single deadline covers the whole turn, including every tool round-trip.
    Failures of the chat call raise a TurnError out of ``run_turn``; nothing
    for the failed call is appended, while tool results already recorded in
    earlier rounds of the same turn are kept.  Tool failures never abort the
    turn: the registry turns them into error text the model gets to see.

    Usage::

        orchestrator = ConversationOrchestrator(chat, registry)
        result = await orchestrator.run_turn("list files in /tmp")
        print(result.text)
    """

    def __init__(
        self,
        chat: ChatClient,
        registry: ToolRegistry,
        *,
        turn_timeout: float = DEFAULT_TURN_TIMEOUT_SECONDS,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        observer: ToolObserver | None = None,
    ) -> None:
        self._chat = chat
        self._registry = registry
        self._turn_timeout = turn_timeout
        self._max_tool_rounds = max_tool_rounds
        self._observer = observer
        self._tools = registry.schemas()
        self._history: list[Message] = []
        self.state = TurnState.IDLE

    @property
    def history(self) -> list[Message]:
        """A snapshot of the conversation so far, oldest first."""
        return list(self._history)

    async def run_turn(self, user_text: str) -> TurnResult:
        """Process one user input to a final answer.

        Raises:
            TurnTimeoutError: the per-turn deadline lapsed.
            ChatTransportError: the chat endpoint failed.
            ToolRoundLimitError: the model exceeded the tool round limit.
        """
        self._history.append(Message.user(user_text))
        deadline = asyncio.get_running_loop().time() + self._turn_timeout
        rounds = 0
        calls = 0
        try:
            while True:
                reply = await self._await_model(deadline)

                if not reply.requests_tools:
                    self.state = TurnState.TERMINAL
                    self._history.append(reply)
                    logger.info("Turn finished: %d round(s), %d tool call(s)", rounds, calls)
                    return TurnResult(text=reply.text or NO_RESPONSE, tool_calls=calls, rounds=rounds)

                if rounds >= self._max_tool_rounds:
                    raise ToolRoundLimitError(
                        f"Stopped after {rounds} tool round(s) without a final answer"
                    )
                rounds += 1
                self.state = TurnState.TOOL_DISPATCH
                self._history.append(reply)
                calls += await self._dispatch_tools(reply.tool_calls)
        finally:
            if self.state is not TurnState.TERMINAL:
                logger.warning("Turn aborted after %d round(s)", rounds)
            self.state = TurnState.IDLE

    async def _await_model(self, deadline: float) -> Message:
        """Send the history to the chat endpoint, bounded by the turn deadline."""
        self.state = TurnState.AWAITING_MODEL
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise TurnTimeoutError(f"Request timed out after {self._turn_timeout:.0f}s")
        try:
            return await asyncio.wait_for(
                self._chat.complete(list(self._history), self._tools), timeout=remaining
            )
        except asyncio.TimeoutError:
            raise TurnTimeoutError(f"Request timed out after {self._turn_timeout:.0f}s") from None

    async def _dispatch_tools(self, tool_calls: tuple[ToolCallRequest, ...]) -> int:
        """Run each requested tool in order, appending one result per call."""
        for call in tool_calls:
            if self._observer is not None:
                self._observer(call)
            outcome = await self._registry.dispatch(call.name, call.arguments)
            self._history.append(
                Message.tool_result(call.call_id, outcome.text, is_error=outcome.is_error)
            )
        return len(tool_calls)
