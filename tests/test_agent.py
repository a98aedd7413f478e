"""Tests for the agent loop using a scripted provider."""
from __future__ import annotations

import asyncio
from typing import Any

import pytest

from wright.adapters.events import (
    AgentDone,
    AgentError,
    PermissionResponse,
    PersistMessage,
    StreamText,
    ToolCallFinished,
    ToolCallStarted,
    ToolResultEvent,
)
from wright.engine.agent import (
    CANCELLED_BEFORE_EXECUTION_TEXT,
    PERMISSION_DENIED_TEXT,
    Agent,
    summarize_arguments,
)
from wright.engine.cancellation import CancelToken
from wright.engine.errors import (
    MaxIterationsError,
    ProviderHTTPError,
    RunCancelledError,
    StreamFailedError,
    ToolError,
)
from wright.engine.models import AgentMode, AgentState
from wright.engine.permission import PermissionGate
from wright.engine.providers.base import (
    Provider,
    Request,
    StreamDone,
    StreamError,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
)
from wright.engine.providers.openai_provider import build_input_items
from wright.engine.tools.base import Tool, ToolRegistry, schema
from wright.shared.models.message import MessageRole, TokenUsage, user_message


class ScriptedProvider(Provider):
    """Replays one list of StreamEvents per model turn."""

    def __init__(self, turns: list[list[Any]], repeat_last: bool = False) -> None:
        self.turns = list(turns)
        self.repeat_last = repeat_last
        self.requests: list[Request] = []
        self._model = "gpt-4o"

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def model(self) -> str:
        return self._model

    def set_api_key(self, api_key: str) -> None:
        pass

    def set_model(self, model: str) -> None:
        self._model = model

    async def list_models(self) -> list[str]:
        return [self._model]

    async def send_message(self, request, cancel=None):
        self.requests.append(request)
        if self.repeat_last and len(self.turns) == 1:
            events = self.turns[0]
        else:
            events = self.turns.pop(0)

        async def _gen():
            for event in events:
                yield event

        return _gen()


class FailingProvider(ScriptedProvider):
    async def send_message(self, request, cancel=None):
        self.requests.append(request)
        raise ProviderHTTPError("OpenAI", 401, "bad key")


class EchoTool(Tool):
    """Read-only tool that echoes its raw arguments."""

    def __init__(self, name: str = "ls", output: str = "a.py\nb.py") -> None:
        super().__init__(".")
        self._name = name
        self._output = output
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"{self._name} tool"

    @property
    def parameters(self) -> dict:
        return schema({})

    async def execute(self, arguments, cancel=None):
        self.calls.append(arguments)
        return self._output


class WriteLikeTool(EchoTool):
    requires_permission = True

    def __init__(self) -> None:
        super().__init__(name="write", output="Successfully wrote 3 bytes to x.txt")


class BrokenTool(EchoTool):
    def __init__(self, exc: Exception) -> None:
        super().__init__(name="broken")
        self._exc = exc

    async def execute(self, arguments, cancel=None):
        raise self._exc


def _tool_turn(*calls: tuple[str, str, str], text: str = "") -> list:
    events: list = []
    if text:
        events.append(TextDelta(text=text))
    for call_id, name, args in calls:
        events.append(ToolCallStart(call_id=call_id, name=name))
        events.append(ToolCallDelta(call_id=call_id, delta=args))
        events.append(ToolCallEnd(call_id=call_id, name=name, arguments=args))
    events.append(StreamDone(usage=TokenUsage(5, 2, 7)))
    return events


def _text_turn(*chunks: str, usage: TokenUsage | None = None) -> list:
    events: list = [TextDelta(text=c) for c in chunks]
    events.append(StreamDone(usage=usage or TokenUsage(1, 1, 2)))
    return events


def _agent(provider, *tools, mode=AgentMode.BUILD, gate=None, max_iterations=25) -> Agent:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    return Agent(
        provider=provider,
        registry=registry,
        gate=gate or PermissionGate(),
        work_dir=".",
        mode=mode,
        max_iterations=max_iterations,
    )


async def _run(agent: Agent, cancel: CancelToken | None = None, history=None) -> list:
    history = history if history is not None else [user_message("ses_1", "list files")]
    return [event async for event in agent.run(history, "ses_1", cancel)]


async def _answer_permissions(gate: PermissionGate, response: PermissionResponse, seen: list) -> None:
    while True:
        request = await gate.next_request()
        seen.append(request)
        request.respond(response)


@pytest.mark.asyncio
async def test_text_only_turn_ends_with_done():
    provider = ScriptedProvider([_text_turn("Hello", " world", usage=TokenUsage(10, 5, 15))])
    agent = _agent(provider, EchoTool())

    events = await _run(agent)

    assert [type(e) for e in events] == [StreamText, StreamText, AgentDone]
    assert [e.text for e in events[:2]] == ["Hello", " world"]
    done = events[-1]
    assert done.message.content == "Hello world"
    assert done.message.role == MessageRole.ASSISTANT
    assert done.message.session_id == "ses_1"
    assert done.message.usage.total_tokens == 15
    assert not any(isinstance(e, PersistMessage) for e in events)
    assert agent.state == AgentState.DONE


@pytest.mark.asyncio
async def test_tool_turn_event_order_and_second_turn():
    ls = EchoTool()
    provider = ScriptedProvider([
        _tool_turn(("c1", "ls", "{}")),
        _text_turn("Two files."),
    ])
    agent = _agent(provider, ls)
    history = [user_message("ses_1", "list files")]

    events = await _run(agent, history=history)

    kinds = [type(e) for e in events]
    assert kinds == [
        ToolCallStarted,
        ToolCallFinished,
        PersistMessage,
        ToolResultEvent,
        PersistMessage,
        StreamText,
        AgentDone,
    ]
    assert (events[0].call_id, events[0].tool_name) == ("c1", "ls")
    assert (events[1].call_id, events[1].tool_name, events[1].arguments) == ("c1", "ls", "{}")

    assistant = events[2].message
    assert assistant.role == MessageRole.ASSISTANT
    assert [c.id for c in assistant.tool_calls] == ["c1"]

    result = events[3]
    assert (result.call_id, result.tool_name, result.output, result.is_error) == (
        "c1", "ls", "a.py\nb.py", False,
    )
    tool_msg = events[4].message
    assert tool_msg.role == MessageRole.TOOL
    assert [r.tool_call_id for r in tool_msg.tool_results] == ["c1"]

    assert ls.calls == ["{}"]
    assert len(provider.requests) == 2
    second = provider.requests[1].messages
    assert [m.role for m in second] == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.TOOL]
    # The caller's history is never mutated.
    assert len(history) == 1


@pytest.mark.asyncio
async def test_multiple_calls_produce_one_aggregated_tool_message():
    provider = ScriptedProvider([
        _tool_turn(("c1", "ls", '{"path": "a"}'), ("c2", "ls", '{"path": "b"}')),
        _text_turn("done"),
    ])
    agent = _agent(provider, EchoTool())

    events = await _run(agent)

    results = [e for e in events if isinstance(e, ToolResultEvent)]
    assert [r.call_id for r in results] == ["c1", "c2"]
    persisted = [e.message for e in events if isinstance(e, PersistMessage)]
    assert len(persisted) == 2
    assert [r.tool_call_id for r in persisted[1].tool_results] == ["c1", "c2"]


@pytest.mark.asyncio
async def test_orphan_tool_call_end_gets_a_start():
    provider = ScriptedProvider([
        [ToolCallEnd(call_id="c9", name="ls", arguments="{}"), StreamDone()],
        _text_turn("ok"),
    ])
    agent = _agent(provider, EchoTool())

    events = await _run(agent)

    started = [e for e in events if isinstance(e, ToolCallStarted)]
    finished = [e for e in events if isinstance(e, ToolCallFinished)]
    assert [e.call_id for e in started] == ["c9"]
    assert [e.call_id for e in finished] == ["c9"]
    assert events.index(started[0]) < events.index(finished[0])


@pytest.mark.asyncio
async def test_call_without_end_is_finalized_with_buffered_arguments():
    provider = ScriptedProvider([
        [
            ToolCallStart(call_id="c1", name="ls"),
            ToolCallDelta(call_id="c1", delta='{"pa'),
            ToolCallDelta(call_id="c1", delta='th": "."}'),
            StreamDone(),
        ],
        _text_turn("ok"),
    ])
    ls = EchoTool()
    agent = _agent(provider, ls)

    events = await _run(agent)

    finished = [e for e in events if isinstance(e, ToolCallFinished)]
    assert finished[0].arguments == '{"path": "."}'
    assert ls.calls == ['{"path": "."}']


@pytest.mark.asyncio
async def test_plan_mode_hides_and_rejects_permissioned_tools():
    writer = WriteLikeTool()
    gate = PermissionGate()
    provider = ScriptedProvider([
        _tool_turn(("c1", "write", '{"file_path": "x.txt", "content": "abc"}')),
        _text_turn("ok"),
    ])
    agent = _agent(provider, EchoTool(), writer, mode=AgentMode.PLAN, gate=gate)

    events = await _run(agent)

    declared = [t.name for t in provider.requests[0].tools]
    assert declared == ["ls"]
    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result.is_error
    assert "not available in PLAN mode" in result.output
    assert writer.calls == []
    assert gate._requests.empty()
    assert isinstance(events[-1], AgentDone)


@pytest.mark.asyncio
async def test_build_mode_declares_all_tools():
    provider = ScriptedProvider([_text_turn("hi")])
    agent = _agent(provider, EchoTool(), WriteLikeTool(), mode=AgentMode.BUILD)

    await _run(agent)

    assert [t.name for t in provider.requests[0].tools] == ["ls", "write"]
    assert "# Mode: BUILD" in provider.requests[0].system_prompt


@pytest.mark.asyncio
async def test_mode_is_snapshot_at_run_start():
    provider = ScriptedProvider([
        _tool_turn(("c1", "ls", "{}")),
        _text_turn("ok"),
    ])
    agent = _agent(provider, EchoTool(), WriteLikeTool(), mode=AgentMode.PLAN)

    events = []
    async for event in agent.run([user_message("ses_1", "hi")], "ses_1"):
        events.append(event)
        if isinstance(event, ToolCallStarted):
            agent.set_mode(AgentMode.BUILD)

    assert [t.name for t in provider.requests[1].tools] == ["ls"]
    assert agent.mode == AgentMode.BUILD


@pytest.mark.asyncio
async def test_permission_allowed_runs_tool():
    gate = PermissionGate()
    writer = WriteLikeTool()
    provider = ScriptedProvider([
        _tool_turn(("c1", "write", '{"file_path": "x.txt"}')),
        _text_turn("written"),
    ])
    agent = _agent(provider, writer, gate=gate)
    seen: list = []
    responder = asyncio.create_task(_answer_permissions(gate, PermissionResponse.ALLOW, seen))
    try:
        events = await _run(agent)
    finally:
        responder.cancel()

    assert len(seen) == 1
    assert seen[0].tool_name == "write"
    assert seen[0].summary == summarize_arguments('{"file_path": "x.txt"}')
    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert not result.is_error
    assert writer.calls == ['{"file_path": "x.txt"}']


@pytest.mark.asyncio
async def test_denied_call_becomes_error_result_and_loop_continues():
    gate = PermissionGate()
    writer = WriteLikeTool()
    ls = EchoTool()
    provider = ScriptedProvider([
        _tool_turn(("c1", "write", "{}"), ("c2", "ls", "{}")),
        _text_turn("ok"),
    ])
    agent = _agent(provider, ls, writer, gate=gate)
    seen: list = []
    responder = asyncio.create_task(_answer_permissions(gate, PermissionResponse.DENY, seen))
    try:
        events = await _run(agent)
    finally:
        responder.cancel()

    results = [e for e in events if isinstance(e, ToolResultEvent)]
    assert results[0].output == PERMISSION_DENIED_TEXT
    assert results[0].is_error
    assert results[1].output == "a.py\nb.py"
    assert writer.calls == []
    assert ls.calls == ["{}"]
    assert len(provider.requests) == 2
    assert isinstance(events[-1], AgentDone)


@pytest.mark.asyncio
async def test_allow_for_session_skips_later_prompts():
    gate = PermissionGate()
    writer = WriteLikeTool()
    provider = ScriptedProvider([
        _tool_turn(("c1", "write", "{}")),
        _tool_turn(("c2", "write", "{}")),
        _text_turn("ok"),
    ])
    agent = _agent(provider, writer, gate=gate)
    seen: list = []
    responder = asyncio.create_task(
        _answer_permissions(gate, PermissionResponse.ALLOW_FOR_SESSION, seen)
    )
    try:
        await _run(agent)
    finally:
        responder.cancel()

    assert len(seen) == 1
    assert writer.calls == ["{}", "{}"]
    assert gate.is_allowed("write")


@pytest.mark.asyncio
async def test_unknown_tool_returns_error_result():
    provider = ScriptedProvider([
        _tool_turn(("c1", "nope", "{}")),
        _text_turn("ok"),
    ])
    agent = _agent(provider, EchoTool())

    events = await _run(agent)

    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result.is_error
    assert result.output == "Error: unknown tool 'nope'"


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [ToolError("file not found: x"), RuntimeError("kaboom")])
async def test_tool_failures_are_fed_back(exc):
    provider = ScriptedProvider([
        _tool_turn(("c1", "broken", "{}")),
        _text_turn("ok"),
    ])
    agent = _agent(provider, BrokenTool(exc))

    events = await _run(agent)

    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result.is_error
    assert result.output == f"Error: {exc}"
    assert isinstance(events[-1], AgentDone)


@pytest.mark.asyncio
async def test_stream_error_fails_run():
    provider = ScriptedProvider([
        [TextDelta(text="par"), StreamError(error=StreamFailedError("response failed"))],
    ])
    agent = _agent(provider, EchoTool())

    events = await _run(agent)

    assert isinstance(events[0], StreamText)
    assert isinstance(events[-1], AgentError)
    assert isinstance(events[-1].error, StreamFailedError)
    assert not events[-1].cancelled
    assert agent.state == AgentState.FAILED


@pytest.mark.asyncio
async def test_send_failure_fails_run():
    provider = FailingProvider([])
    agent = _agent(provider, EchoTool())

    events = await _run(agent)

    assert len(events) == 1
    assert isinstance(events[0].error, ProviderHTTPError)
    assert events[0].error.status == 401


@pytest.mark.asyncio
async def test_iteration_cap_stops_after_one_turn():
    provider = ScriptedProvider([_tool_turn(("c1", "ls", "{}"))], repeat_last=True)
    agent = _agent(provider, EchoTool(), max_iterations=1)

    events = await _run(agent)

    assert len(provider.requests) == 1
    assert isinstance(events[-1], AgentError)
    assert isinstance(events[-1].error, MaxIterationsError)
    assert events[-1].error.limit == 1
    assert agent.state == AgentState.FAILED


@pytest.mark.asyncio
async def test_cancelled_before_run_sends_nothing():
    provider = ScriptedProvider([_text_turn("never")])
    agent = _agent(provider, EchoTool())
    token = CancelToken()
    token.cancel("user pressed escape")

    events = await _run(agent, cancel=token)

    assert provider.requests == []
    assert len(events) == 1
    assert events[0].cancelled
    assert isinstance(events[0].error, RunCancelledError)


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_permission_denies_then_stops():
    gate = PermissionGate()
    writer = WriteLikeTool()
    provider = ScriptedProvider([
        _tool_turn(("c1", "write", "{}")),
        _text_turn("never"),
    ])
    agent = _agent(provider, writer, gate=gate)
    token = CancelToken()

    async def cancel_on_request():
        await gate.next_request()
        token.cancel("user pressed escape")

    canceller = asyncio.create_task(cancel_on_request())
    events = await _run(agent, cancel=token)
    await canceller

    result = next(e for e in events if isinstance(e, ToolResultEvent))
    assert result.output == PERMISSION_DENIED_TEXT
    assert writer.calls == []
    assert len(provider.requests) == 1
    assert isinstance(events[-1], AgentError)
    assert events[-1].cancelled


@pytest.mark.asyncio
async def test_every_run_ends_with_exactly_one_terminal_event():
    scripts = [
        [_text_turn("a")],
        [_tool_turn(("c1", "ls", "{}")), _text_turn("b")],
        [[StreamError(error=StreamFailedError("x"))]],
    ]
    for turns in scripts:
        agent = _agent(ScriptedProvider(turns), EchoTool())
        events = await _run(agent)
        terminal = [e for e in events if isinstance(e, (AgentDone, AgentError))]
        assert len(terminal) == 1
        assert events[-1] is terminal[0]


class CancellingTool(EchoTool):
    """Cancels the run's token while it executes."""

    def __init__(self, token: CancelToken) -> None:
        super().__init__(name="ls")
        self._token = token

    async def execute(self, arguments, cancel=None):
        self.calls.append(arguments)
        self._token.cancel("user pressed escape")
        return "a.py"


@pytest.mark.asyncio
async def test_cancel_between_calls_records_a_result_for_every_call():
    token = CancelToken()
    first = CancellingTool(token)
    second = EchoTool(name="view")
    provider = ScriptedProvider([
        _tool_turn(("c1", "ls", "{}"), ("c2", "view", '{"file_path": "a.py"}')),
        _text_turn("never"),
    ])
    agent = _agent(provider, first, second)

    events = await _run(agent, cancel=token)

    assert first.calls == ["{}"]
    assert second.calls == []
    assert len(provider.requests) == 1

    results = [e for e in events if isinstance(e, ToolResultEvent)]
    assert [(r.call_id, r.is_error) for r in results] == [("c1", False), ("c2", True)]
    assert results[1].output == CANCELLED_BEFORE_EXECUTION_TEXT

    persisted = [e.message for e in events if isinstance(e, PersistMessage)]
    assert [m.role for m in persisted] == [MessageRole.ASSISTANT, MessageRole.TOOL]
    assert [r.tool_call_id for r in persisted[1].tool_results] == ["c1", "c2"]
    assert persisted[1].tool_results[0].output == "a.py"

    # The stored history stays valid input for the next request.
    items = build_input_items(persisted)
    calls = {i["call_id"] for i in items if i.get("type") == "function_call"}
    outputs = {i["call_id"] for i in items if i.get("type") == "function_call_output"}
    assert calls == outputs == {"c1", "c2"}

    terminal = [e for e in events if isinstance(e, (AgentDone, AgentError))]
    assert len(terminal) == 1
    assert events[-1] is terminal[0]
    assert events[-1].cancelled
    assert isinstance(events[-2], PersistMessage)


@pytest.mark.asyncio
async def test_iteration_cap_is_fixed_when_the_run_starts():
    provider = ScriptedProvider([_tool_turn(("c1", "ls", "{}"))], repeat_last=True)
    tool = EchoTool()
    agent = _agent(provider, tool, max_iterations=2)

    original_execute = tool.execute

    async def lower_cap(arguments, cancel=None):
        agent.max_iterations = 1
        return await original_execute(arguments, cancel)

    tool.execute = lower_cap
    events = await _run(agent)

    assert len(provider.requests) == 2
    assert isinstance(events[-1].error, MaxIterationsError)
    assert events[-1].error.limit == 2
    assert agent.max_iterations == 1


def test_summarize_arguments_formats_and_truncates():
    assert summarize_arguments('{"command": "ls -la", "timeout": 5}') == "command: ls -la\ntimeout: 5"
    assert summarize_arguments("not json") == "not json"
    assert summarize_arguments("") == ""
    long = summarize_arguments('{"content": "' + "x" * 600 + '"}')
    assert long.endswith("...")
    assert len(long) == 503
