"""Event types flowing from the agent core to the UI.

An agent run yields these dataclasses in order; the UI dispatches on
their type. Exactly one AgentDone or AgentError ends every run.
PermissionRequest travels on the permission gate's own channel rather
than the run stream, because the run is blocked while it is pending.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from wright.engine.errors import RunCancelledError
from wright.shared.models.message import Message, generate_id

logger = logging.getLogger(__name__)


@dataclass
class AgentEvent:
    """Base event from the agent core."""
    event_type: str = ""
    session_id: str = ""


@dataclass
class StreamText(AgentEvent):
    event_type: str = "stream_text"
    text: str = ""


@dataclass
class ToolCallStarted(AgentEvent):
    event_type: str = "tool_call_started"
    call_id: str = ""
    tool_name: str = ""


@dataclass
class ToolCallFinished(AgentEvent):
    """The model finished streaming a tool call's arguments."""
    event_type: str = "tool_call_finished"
    call_id: str = ""
    tool_name: str = ""
    arguments: str = ""


@dataclass
class ToolResultEvent(AgentEvent):
    event_type: str = "tool_result"
    call_id: str = ""
    tool_name: str = ""
    output: str = ""
    is_error: bool = False


@dataclass
class PersistMessage(AgentEvent):
    """An intermediate message the caller should store durably."""
    event_type: str = "persist_message"
    message: Message | None = None


@dataclass
class AgentDone(AgentEvent):
    event_type: str = "agent_done"
    message: Message | None = None


@dataclass
class AgentError(AgentEvent):
    event_type: str = "agent_error"
    error: Exception | None = None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, RunCancelledError)


class PermissionResponse(Enum):
    ALLOW = "allow"
    DENY = "deny"
    ALLOW_FOR_SESSION = "allow_for_session"


@dataclass
class PermissionRequest(AgentEvent):
    """A permissioned tool call awaiting a human decision.

    The reply slot is single use: the first ``respond`` wins and later
    calls are ignored.
    """
    event_type: str = "permission_request"
    request_id: str = field(default_factory=lambda: generate_id("perm"))
    tool_name: str = ""
    summary: str = ""
    _reply: asyncio.Future | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._reply is None:
            self._reply = asyncio.get_running_loop().create_future()

    @property
    def answered(self) -> bool:
        return self._reply.done()

    def respond(self, response: PermissionResponse) -> bool:
        """Deliver the user's decision. Returns False if already answered."""
        if self._reply.done():
            logger.debug(
                "Ignoring duplicate response %s for %s", response, self.request_id,
            )
            return False
        self._reply.set_result(response)
        return True

    async def wait(self) -> PermissionResponse:
        """Wait for the decision; an abandoned request counts as DENY."""
        try:
            return await asyncio.shield(self._reply)
        except asyncio.CancelledError:
            if self._reply.cancelled():
                return PermissionResponse.DENY
            raise

    def abandon(self) -> None:
        """Close the reply slot without an answer."""
        if not self._reply.done():
            self._reply.cancel()
