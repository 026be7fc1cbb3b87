"""Conversation types shared by the orchestrator and the chat client."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Who authored a message in the conversation history."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model inside an assistant message.

    ``call_id`` is issued by the remote endpoint and echoed back on the
    matching tool-result message; it is never generated locally.
    """

    call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Message:
    """One entry in the conversation history.

    - USER: ``text`` holds the user's input.
    - ASSISTANT: ``text`` may be None for a pure tool-call message;
      ``tool_calls`` lists the requested invocations (empty for a final answer).
    - TOOL_RESULT: ``text`` holds the tool output, ``call_id`` links it to
      the request, ``is_error`` marks tool-level failures.
    """

    role: Role
    text: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()
    call_id: str | None = None
    is_error: bool = False

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=Role.USER, text=text)

    @classmethod
    def assistant(
        cls, text: str | None, tool_calls: list[ToolCallRequest] | tuple[ToolCallRequest, ...] = ()
    ) -> Message:
        return cls(role=Role.ASSISTANT, text=text, tool_calls=tuple(tool_calls))

    @classmethod
    def tool_result(cls, call_id: str, text: str, *, is_error: bool = False) -> Message:
        return cls(role=Role.TOOL_RESULT, text=text, call_id=call_id, is_error=is_error)

    @property
    def requests_tools(self) -> bool:
        return self.role is Role.ASSISTANT and bool(self.tool_calls)


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one completed user turn."""

    text: str
    tool_calls: int = 0
    rounds: int = 0


# ── Turn-level errors ──────────────────────────────────────────────────────────


class TurnError(Exception):
    """A user turn could not be completed; the conversation itself stays usable."""


class TurnTimeoutError(TurnError):
    """The per-turn deadline lapsed before the model produced a final answer."""


class ChatTransportError(TurnError):
    """The chat endpoint could not be reached or rejected the request."""


class ToolRoundLimitError(TurnError):
    """The model kept requesting tools past the per-turn round limit."""
