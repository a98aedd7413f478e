"""Agent loop — drives model turns and tool turns for one prompt.

State machine:
    AWAITING_MODEL --(turn with tool calls)--> EXECUTING_TOOLS --> AWAITING_MODEL
    AWAITING_MODEL --(turn without tool calls)--> DONE
    any state --(provider failure, stream error, cancellation, cap)--> FAILED

One run yields AgentEvents in this order per tool-using turn:
    StreamText* / ToolCallStarted / ToolCallFinished (as streamed)
    PersistMessage(assistant message with calls)
    ToolResultEvent per call, in call order
    PersistMessage(tool message with all results)
and ends with exactly one AgentDone or AgentError. A cancellation during
the tool phase still yields a result for every call (calls not yet run
get an error result) and persists the tool message before the AgentError.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator

from wright.adapters.events import (
    AgentDone,
    AgentError,
    AgentEvent,
    PersistMessage,
    StreamText,
    ToolCallFinished,
    ToolCallStarted,
    ToolResultEvent,
)
from wright.engine.cancellation import CancelToken
from wright.engine.errors import (
    MaxIterationsError,
    ProviderError,
    RunCancelledError,
    StreamFailedError,
    ToolError,
)
from wright.engine.models import AgentMode, AgentState
from wright.engine.permission import PermissionDecision, PermissionGate
from wright.engine.prompt import build_system_prompt
from wright.engine.providers.base import (
    Provider,
    Request,
    StreamDone,
    StreamError,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    ToolDefinition,
)
from wright.engine.tools.base import Tool, ToolRegistry
from wright.shared.models.message import (
    Message,
    MessageRole,
    TokenUsage,
    ToolCall,
    ToolResult,
    tool_result_message,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 25
PERMISSION_DENIED_TEXT = "Permission denied by user."
CANCELLED_BEFORE_EXECUTION_TEXT = "Error: cancelled before execution"
_SUMMARY_LIMIT = 500


def summarize_arguments(arguments: str) -> str:
    """Human-readable one-screen summary of a tool call's arguments."""
    try:
        parsed = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict) and parsed:
        lines = []
        for key, value in parsed.items():
            text = value if isinstance(value, str) else json.dumps(value)
            lines.append(f"{key}: {text}")
        summary = "\n".join(lines)
    else:
        summary = arguments
    if len(summary) > _SUMMARY_LIMIT:
        summary = summary[:_SUMMARY_LIMIT] + "..."
    return summary


@dataclass
class _PendingToolCall:
    """Arguments accumulated for one call id during a single turn."""
    call_id: str
    name: str
    chunks: list[str] = field(default_factory=list)
    final: str | None = None

    @property
    def arguments(self) -> str:
        if self.final:
            return self.final
        return "".join(self.chunks)


@dataclass
class _Turn:
    text: list[str] = field(default_factory=list)
    calls: dict[str, _PendingToolCall] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: Exception | None = None


class Agent:
    """Coordinates the provider, tool registry and permission gate."""

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        gate: PermissionGate,
        work_dir: Path | str,
        mode: AgentMode = AgentMode.PLAN,
        max_tokens: int = 4096,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.gate = gate
        self.work_dir = Path(work_dir)
        self.max_tokens = max_tokens
        self.max_iterations = max_iterations if max_iterations > 0 else DEFAULT_MAX_ITERATIONS
        self._mode = mode
        self._state = AgentState.IDLE

    @property
    def mode(self) -> AgentMode:
        return self._mode

    def set_mode(self, mode: AgentMode) -> None:
        """Switch modes. Takes effect on the next run."""
        logger.info("Agent mode %s -> %s", self._mode.value, mode.value)
        self._mode = mode

    @property
    def state(self) -> AgentState:
        return self._state

    def _transition(self, state: AgentState) -> None:
        if state != self._state:
            logger.debug("Agent state %s -> %s", self._state.value, state.value)
            self._state = state

    def available_tools(self, mode: AgentMode | None = None) -> list[Tool]:
        """Tools declared to the model in ``mode``."""
        mode = mode or self._mode
        return [
            tool for tool in self.registry.all()
            if mode == AgentMode.BUILD or not tool.requires_permission
        ]

    def tool_definitions(self, mode: AgentMode | None = None) -> list[ToolDefinition]:
        return [
            ToolDefinition(name=t.name, description=t.description, parameters=t.parameters)
            for t in self.available_tools(mode)
        ]

    async def run(
        self,
        history: list[Message],
        session_id: str,
        cancel: CancelToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Run the loop until the model stops calling tools.

        ``history`` is copied; the caller's list is never mutated. The
        mode and iteration cap are read once, so changing them mid-run
        only affects the next run.
        """
        mode = self._mode
        max_iterations = self.max_iterations
        messages = list(history)
        system_prompt = build_system_prompt(
            mode, self.provider.model, self.work_dir, self.available_tools(mode),
        )
        definitions = self.tool_definitions(mode)
        logger.info(
            "Agent run session=%s mode=%s history=%d tools=%d",
            session_id, mode.value, len(messages), len(definitions),
        )

        for iteration in range(1, max_iterations + 1):
            if cancel is not None and cancel.is_cancelled:
                yield self._fail(session_id, RunCancelledError(cancel.cause or "cancelled"))
                return

            self._transition(AgentState.AWAITING_MODEL)
            logger.debug("Model turn %d/%d", iteration, max_iterations)
            request = Request(
                system_prompt=system_prompt,
                messages=messages,
                tools=definitions,
                max_tokens=self.max_tokens,
            )
            try:
                stream = await self.provider.send_message(request, cancel)
            except RunCancelledError as exc:
                yield self._fail(session_id, exc)
                return
            except ProviderError as exc:
                logger.warning("Provider request failed: %s", exc)
                yield self._fail(session_id, exc)
                return

            turn = _Turn()
            async for event in self._consume(stream, turn, session_id):
                yield event
            if turn.error is not None:
                yield self._fail(session_id, turn.error)
                return

            # Calls that started but never saw an end are finalized with
            # whatever arguments arrived.
            calls: list[ToolCall] = []
            for pending in turn.calls.values():
                if pending.final is None:
                    pending.final = "".join(pending.chunks)
                    yield ToolCallFinished(
                        session_id=session_id,
                        call_id=pending.call_id,
                        tool_name=pending.name,
                        arguments=pending.final,
                    )
                calls.append(ToolCall(
                    id=pending.call_id, name=pending.name, arguments=pending.arguments,
                ))

            assistant = Message(
                role=MessageRole.ASSISTANT,
                content="".join(turn.text),
                session_id=session_id,
                tool_calls=calls,
                usage=turn.usage,
            )

            if not calls:
                self._transition(AgentState.DONE)
                logger.info(
                    "Agent done session=%s turns=%d tokens=%d",
                    session_id, iteration, assistant.usage.total_tokens,
                )
                yield AgentDone(session_id=session_id, message=assistant)
                return

            yield PersistMessage(session_id=session_id, message=assistant)
            messages.append(assistant)

            self._transition(AgentState.EXECUTING_TOOLS)
            results: list[ToolResult] = []
            for call in calls:
                # Every call gets a result, even once cancelled, so the
                # persisted history pairs each call with an output.
                if cancel is not None and cancel.is_cancelled:
                    result = self._error_result(call, CANCELLED_BEFORE_EXECUTION_TEXT)
                else:
                    result = await self._execute_tool(call, mode, cancel)
                results.append(result)
                yield ToolResultEvent(
                    session_id=session_id,
                    call_id=result.tool_call_id,
                    tool_name=result.name,
                    output=result.output,
                    is_error=result.is_error,
                )

            tool_message = tool_result_message(session_id, results)
            yield PersistMessage(session_id=session_id, message=tool_message)
            messages.append(tool_message)

            if cancel is not None and cancel.is_cancelled:
                yield self._fail(session_id, RunCancelledError(cancel.cause or "cancelled"))
                return

        logger.warning("Agent hit max iterations (%d)", max_iterations)
        yield self._fail(session_id, MaxIterationsError(max_iterations))

    async def _consume(
        self,
        stream: AsyncIterator,
        turn: _Turn,
        session_id: str,
    ) -> AsyncIterator[AgentEvent]:
        """Fold one provider stream into ``turn``, yielding UI events."""
        try:
            async for event in stream:
                if isinstance(event, TextDelta):
                    turn.text.append(event.text)
                    yield StreamText(session_id=session_id, text=event.text)

                elif isinstance(event, ToolCallStart):
                    if event.call_id not in turn.calls:
                        turn.calls[event.call_id] = _PendingToolCall(event.call_id, event.name)
                        yield ToolCallStarted(
                            session_id=session_id, call_id=event.call_id, tool_name=event.name,
                        )

                elif isinstance(event, ToolCallDelta):
                    pending = turn.calls.get(event.call_id)
                    if pending is not None:
                        pending.chunks.append(event.delta)

                elif isinstance(event, ToolCallEnd):
                    pending = turn.calls.get(event.call_id)
                    if pending is None:
                        pending = _PendingToolCall(event.call_id, event.name)
                        turn.calls[event.call_id] = pending
                        yield ToolCallStarted(
                            session_id=session_id, call_id=event.call_id, tool_name=event.name,
                        )
                    if pending.final is not None:
                        continue
                    if not pending.name:
                        pending.name = event.name
                    pending.final = event.arguments or "".join(pending.chunks)
                    yield ToolCallFinished(
                        session_id=session_id,
                        call_id=pending.call_id,
                        tool_name=pending.name,
                        arguments=pending.final,
                    )

                elif isinstance(event, StreamDone):
                    turn.usage = event.usage
                    break

                elif isinstance(event, StreamError):
                    turn.error = event.error or StreamFailedError("stream failed")
                    break
        except Exception as exc:
            # The provider contract forbids raising here; keep the single
            # terminal event guarantee if one does anyway.
            logger.exception("Provider stream raised")
            turn.error = exc if isinstance(exc, ProviderError) else ProviderError(str(exc))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _execute_tool(
        self,
        call: ToolCall,
        mode: AgentMode,
        cancel: CancelToken | None,
    ) -> ToolResult:
        tool = self.registry.get(call.name)
        if tool is None:
            logger.warning("Model called unknown tool %r", call.name)
            return self._error_result(call, f"Error: unknown tool '{call.name}'")

        if tool.requires_permission:
            if mode == AgentMode.PLAN:
                logger.warning("Rejected %s in PLAN mode", call.name)
                return self._error_result(
                    call,
                    f"Error: tool '{call.name}' is not available in PLAN mode. "
                    "Switch to BUILD mode to use this tool.",
                )
            decision = await self.gate.check(
                call.name, summarize_arguments(call.arguments), cancel,
            )
            if decision == PermissionDecision.DENY:
                return self._error_result(call, PERMISSION_DENIED_TEXT)

        try:
            output = await tool.execute(call.arguments, cancel)
        except ToolError as exc:
            logger.info("Tool %s failed: %s", call.name, exc)
            return self._error_result(call, f"Error: {exc}")
        except Exception as exc:
            # Tool failures are fed back to the model, never fatal.
            logger.exception("Tool %s raised", call.name)
            return self._error_result(call, f"Error: {exc}")

        logger.info("Tool %s ok (%d chars)", call.name, len(output))
        return ToolResult(tool_call_id=call.id, name=call.name, output=output)

    @staticmethod
    def _error_result(call: ToolCall, text: str) -> ToolResult:
        return ToolResult(tool_call_id=call.id, name=call.name, output=text, is_error=True)

    def _fail(self, session_id: str, error: Exception) -> AgentError:
        self._transition(AgentState.FAILED)
        if isinstance(error, RunCancelledError):
            logger.info("Agent run cancelled: %s", error.cause)
        else:
            logger.warning("Agent run failed: %s", error)
        return AgentError(session_id=session_id, error=error)
