"""Tests for ConversationOrchestrator — the chat endpoint is a scripted fake."""

import asyncio
from typing import Any

import pytest

from agent_console.agent.orchestrator import ConversationOrchestrator, TurnState
from agent_console.agent.types import (
    ChatTransportError,
    Message,
    Role,
    ToolCallRequest,
    ToolRoundLimitError,
    TurnTimeoutError,
)
from agent_console.tools.file_tools import FILE_TOOLS
from agent_console.tools.registry import ToolDeclaration, ToolError, ToolParameter, ToolRegistry


# ── Helpers ────────────────────────────────────────────────────────────────────


class ScriptedChat:
    """ChatClient that replays a list of replies (or raises queued exceptions)."""

    def __init__(self, *replies: Message | BaseException) -> None:
        self._replies = list(replies)
        self.seen: list[list[Message]] = []
        self.tools: list[dict[str, Any]] = []

    async def complete(self, history: list[Message], tools: list[dict[str, Any]]) -> Message:
        self.seen.append(history)
        self.tools = tools
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class SlowChat:
    async def complete(self, history: list[Message], tools: list[dict[str, Any]]) -> Message:
        await asyncio.sleep(10)
        return Message.assistant("too late")


def call(name: str, call_id: str = "call_1", **arguments: Any) -> Message:
    return Message.assistant(None, [ToolCallRequest(call_id=call_id, name=name, arguments=arguments)])


def echo_tool(name: str = "Echo", handler: Any = None) -> ToolDeclaration:
    return ToolDeclaration(
        name=name,
        description="Echo text back.",
        handler=handler or (lambda text: f"echo: {text}"),
        parameters=(ToolParameter("text", "string"),),
    )


def make_orchestrator(chat: Any, *tools: ToolDeclaration, **kwargs: Any) -> ConversationOrchestrator:
    return ConversationOrchestrator(chat, ToolRegistry(tools or (echo_tool(),)), **kwargs)


# ── Terminal replies ───────────────────────────────────────────────────────────


class TestFinalAnswer:
    async def test_returns_text_and_appends_user_and_assistant(self) -> None:
        chat = ScriptedChat(Message.assistant("Hello!"))
        orchestrator = make_orchestrator(chat)

        result = await orchestrator.run_turn("hi")

        assert result.text == "Hello!"
        assert result.tool_calls == 0
        assert [m.role for m in orchestrator.history] == [Role.USER, Role.ASSISTANT]

    async def test_empty_reply_renders_placeholder(self) -> None:
        orchestrator = make_orchestrator(ScriptedChat(Message.assistant(None)))
        result = await orchestrator.run_turn("hi")
        assert result.text == "[No response]"

    async def test_sends_tool_schemas(self) -> None:
        chat = ScriptedChat(Message.assistant("ok"))
        await make_orchestrator(chat).run_turn("hi")
        assert [t["name"] for t in chat.tools] == ["Echo"]

    async def test_history_carries_across_turns(self) -> None:
        chat = ScriptedChat(Message.assistant("one"), Message.assistant("two"))
        orchestrator = make_orchestrator(chat)
        await orchestrator.run_turn("first")
        await orchestrator.run_turn("second")
        assert [m.text for m in chat.seen[1]] == ["first", "one", "second"]

    async def test_state_returns_to_idle(self) -> None:
        orchestrator = make_orchestrator(ScriptedChat(Message.assistant("ok")))
        await orchestrator.run_turn("hi")
        assert orchestrator.state is TurnState.IDLE


# ── Tool dispatch ──────────────────────────────────────────────────────────────


class TestToolDispatch:
    async def test_list_files_round_trip(self, tmp_path: Any) -> None:
        folder = tmp_path / "x"
        folder.mkdir()
        (folder / "a.txt").write_text("a")
        (folder / "b.txt").write_text("b")
        chat = ScriptedChat(
            call("ListFiles", path=str(folder)),
            Message.assistant("There are two files: a.txt and b.txt."),
        )
        orchestrator = make_orchestrator(chat, *FILE_TOOLS)

        result = await orchestrator.run_turn(f"list files in {folder}")

        history = orchestrator.history
        assert len(history) == 4
        assert [m.role for m in history] == [
            Role.USER, Role.ASSISTANT, Role.TOOL_RESULT, Role.ASSISTANT,
        ]
        assert history[2].call_id == "call_1"
        assert history[2].text == "a.txt\nb.txt"
        assert result.text == "There are two files: a.txt and b.txt."
        assert result.tool_calls == 1
        assert result.rounds == 1

    async def test_model_sees_tool_result_on_next_call(self) -> None:
        chat = ScriptedChat(call("Echo", text="ping"), Message.assistant("done"))
        await make_orchestrator(chat).run_turn("go")
        second = chat.seen[1]
        assert second[-1].role is Role.TOOL_RESULT
        assert second[-1].text == "echo: ping"

    async def test_multiple_calls_run_in_listed_order(self) -> None:
        order: list[str] = []

        def handler(text: str) -> str:
            order.append(text)
            return text.upper()

        reply = Message.assistant("Working on it", [
            ToolCallRequest("c1", "Echo", {"text": "first"}),
            ToolCallRequest("c2", "Echo", {"text": "second"}),
        ])
        chat = ScriptedChat(reply, Message.assistant("ok"))
        orchestrator = make_orchestrator(chat, echo_tool(handler=handler))

        await orchestrator.run_turn("go")

        assert order == ["first", "second"]
        results = [m for m in orchestrator.history if m.role is Role.TOOL_RESULT]
        assert [(m.call_id, m.text) for m in results] == [("c1", "FIRST"), ("c2", "SECOND")]

    async def test_unknown_tool_becomes_error_result(self) -> None:
        chat = ScriptedChat(call("Nope"), Message.assistant("sorry"))
        orchestrator = make_orchestrator(chat)

        result = await orchestrator.run_turn("go")

        tool_result = orchestrator.history[2]
        assert tool_result.is_error is True
        assert "Unknown tool 'Nope'" in (tool_result.text or "")
        assert result.text == "sorry"

    async def test_tool_failure_does_not_abort_turn(self) -> None:
        def broken(text: str) -> str:
            raise ToolError("disk on fire")

        chat = ScriptedChat(call("Echo", text="x"), Message.assistant("recovered"))
        orchestrator = make_orchestrator(chat, echo_tool(handler=broken))

        result = await orchestrator.run_turn("go")

        assert orchestrator.history[2].text == "Error: disk on fire"
        assert result.text == "recovered"

    async def test_observer_sees_each_call(self) -> None:
        seen: list[str] = []
        chat = ScriptedChat(call("Echo", text="x"), Message.assistant("ok"))
        orchestrator = make_orchestrator(chat, observer=lambda c: seen.append(c.name))
        await orchestrator.run_turn("go")
        assert seen == ["Echo"]

    async def test_round_limit_raises_without_dangling_call(self) -> None:
        chat = ScriptedChat(
            call("Echo", "c1", text="1"),
            call("Echo", "c2", text="2"),
            call("Echo", "c3", text="3"),
        )
        orchestrator = make_orchestrator(chat, max_tool_rounds=2)

        with pytest.raises(ToolRoundLimitError):
            await orchestrator.run_turn("loop forever")

        history = orchestrator.history
        assert history[-1].role is Role.TOOL_RESULT
        assert history[-1].call_id == "c2"


# ── Turn-level failures ────────────────────────────────────────────────────────


class TestTurnFailures:
    async def test_transport_error_keeps_only_user_message(self) -> None:
        chat = ScriptedChat(ChatTransportError("Network error: boom"))
        orchestrator = make_orchestrator(chat)

        with pytest.raises(ChatTransportError):
            await orchestrator.run_turn("hi")

        assert [m.role for m in orchestrator.history] == [Role.USER]

    async def test_timeout_raises_turn_timeout(self) -> None:
        orchestrator = make_orchestrator(SlowChat(), turn_timeout=0.05)

        with pytest.raises(TurnTimeoutError, match="timed out"):
            await orchestrator.run_turn("hi")

        assert [m.role for m in orchestrator.history] == [Role.USER]

    async def test_failure_mid_turn_keeps_earlier_tool_results(self) -> None:
        chat = ScriptedChat(call("Echo", text="x"), ChatTransportError("Network error: gone"))
        orchestrator = make_orchestrator(chat)

        with pytest.raises(ChatTransportError):
            await orchestrator.run_turn("go")

        assert [m.role for m in orchestrator.history] == [
            Role.USER, Role.ASSISTANT, Role.TOOL_RESULT,
        ]

    async def test_deadline_spans_tool_round_trips(self) -> None:
        async def slow_tool(text: str) -> str:
            await asyncio.sleep(0.1)
            return text

        chat = ScriptedChat(call("Echo", text="x"), Message.assistant("never reached"))
        orchestrator = make_orchestrator(chat, echo_tool(handler=slow_tool), turn_timeout=0.05)

        with pytest.raises(TurnTimeoutError):
            await orchestrator.run_turn("go")

        assert orchestrator.history[-1].role is Role.TOOL_RESULT
        assert len(chat.seen) == 1

    async def test_conversation_continues_after_failure(self) -> None:
        chat = ScriptedChat(ChatTransportError("down"), Message.assistant("back up"))
        orchestrator = make_orchestrator(chat)

        with pytest.raises(ChatTransportError):
            await orchestrator.run_turn("first")
        result = await orchestrator.run_turn("second")

        assert result.text == "back up"
        assert [m.text for m in orchestrator.history] == ["first", "second", "back up"]
