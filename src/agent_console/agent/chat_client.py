"""Chat endpoint adapter — neutral conversation history in, one assistant message out."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Protocol, runtime_checkable

import anthropic
from anthropic import AsyncAnthropic
from anthropic.types import TextBlock, ToolUseBlock

from agent_console.agent.types import (
    ChatTransportError,
    Message,
    Role,
    ToolCallRequest,
    TurnTimeoutError,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant running in the user's terminal. Today is {today}. "
    "You can inspect the local filesystem, run shell commands, search the web and "
    "manage the user's Outlook mailbox through the tools provided. Use a tool when "
    "it helps answer the request; when a tool reports an error, explain it or try a "
    "different approach. Keep final answers concise."
)


@runtime_checkable
class ChatClient(Protocol):
    """Anything that takes the full history plus tool schemas and returns one reply."""

    async def complete(
        self, history: list[Message], tools: list[dict[str, Any]]
    ) -> Message:
        """Return the model's next assistant message for ``history``."""
        ...


def to_wire_messages(history: list[Message]) -> list[dict[str, Any]]:
    """Convert neutral history into the Messages API shape.

    Tool results travel as ``tool_result`` blocks under the user role, and
    consecutive same-role entries are merged into one wire message so that
    several results from a single response are delivered together.
    """
    wire: list[dict[str, Any]] = []
    for message in history:
        if message.role is Role.ASSISTANT:
            role = "assistant"
            blocks: list[dict[str, Any]] = []
            if message.text:
                blocks.append({"type": "text", "text": message.text})
            blocks.extend(
                {"type": "tool_use", "id": c.call_id, "name": c.name, "input": c.arguments}
                for c in message.tool_calls
            )
        elif message.role is Role.TOOL_RESULT:
            role = "user"
            blocks = [{
                "type": "tool_result",
                "tool_use_id": message.call_id,
                "content": message.text or "",
                "is_error": message.is_error,
            }]
        else:
            role = "user"
            blocks = [{"type": "text", "text": message.text or ""}]

        if not blocks:
            continue
        if wire and wire[-1]["role"] == role:
            wire[-1]["content"].extend(blocks)
        else:
            wire.append({"role": role, "content": blocks})
    return wire


def from_response_content(content: list[Any]) -> Message:
    """Build an assistant Message from the response's content blocks."""
    texts: list[str] = []
    calls: list[ToolCallRequest] = []
    for block in content:
        if isinstance(block, TextBlock):
            texts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            arguments = block.input if isinstance(block.input, dict) else {}
            calls.append(ToolCallRequest(call_id=block.id, name=block.name, arguments=dict(arguments)))
    text = "\n".join(t for t in texts if t) or None
    return Message.assistant(text, calls)


class AnthropicChatClient:
    """ChatClient backed by the Anthropic Messages API.

    Timeouts are left to the orchestrator's per-turn deadline; SDK retries
    are disabled so a failing endpoint surfaces as one turn-level error.
    SDK exceptions are translated into TurnTimeoutError / ChatTransportError.

    Usage::

        chat = AnthropicChatClient(api_key="...", model="claude-sonnet-4-6")
        reply = await chat.complete(history, registry.schemas())
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        max_tokens: int = 4096,
        client: AsyncAnthropic | None = None,
    ) -> None:
        self._client = client or AsyncAnthropic(
            api_key=api_key, base_url=base_url, max_retries=0
        )
        self._model = model
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self, history: list[Message], tools: list[dict[str, Any]]
    ) -> Message:
        wire = to_wire_messages(history)
        logger.debug("Chat → %s (%d wire messages, %d tools)", self._model, len(wire), len(tools))
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=SYSTEM_PROMPT.format(today=date.today().isoformat()),
                tools=tools,  # type: ignore[arg-type]
                messages=wire,  # type: ignore[arg-type]
            )
        except anthropic.APITimeoutError as exc:
            raise TurnTimeoutError(f"Request timed out: {exc}") from exc
        except anthropic.APIConnectionError as exc:
            raise ChatTransportError(f"Network error: {exc}") from exc
        except anthropic.APIStatusError as exc:
            raise ChatTransportError(f"API error {exc.status_code}: {exc.message}") from exc
        logger.debug("Chat ← stop_reason=%s", response.stop_reason)
        return from_response_content(list(response.content))

    async def aclose(self) -> None:
        await self._client.close()
