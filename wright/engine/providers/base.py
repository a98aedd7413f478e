"""Abstract base for LLM providers.

A provider turns a provider-agnostic Request into one vendor's wire
protocol and decodes the streamed answer into StreamEvent objects.
The agent loop only ever talks to this interface.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
import logging
from typing import Any, AsyncIterator

from wright.engine.cancellation import CancelToken
from wright.shared.models.message import Message, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_TOKENS = 4096


@dataclass
class ToolDefinition:
    """A tool as declared to the model."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class Request:
    """One model turn: instructions, history, tools and token budget."""
    system_prompt: str = ""
    messages: list[Message] = field(default_factory=list)
    tools: list[ToolDefinition] = field(default_factory=list)
    # <= 0 means "use the provider default"
    max_tokens: int = 0


# ── Stream events ──


@dataclass
class StreamEvent:
    """Base class for normalized provider events."""
    event_type: str = ""


@dataclass
class TextDelta(StreamEvent):
    event_type: str = "text_delta"
    text: str = ""


@dataclass
class ToolCallStart(StreamEvent):
    event_type: str = "tool_call_start"
    call_id: str = ""
    name: str = ""


@dataclass
class ToolCallDelta(StreamEvent):
    event_type: str = "tool_call_delta"
    call_id: str = ""
    delta: str = ""


@dataclass
class ToolCallEnd(StreamEvent):
    event_type: str = "tool_call_end"
    call_id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class StreamDone(StreamEvent):
    event_type: str = "done"
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class StreamError(StreamEvent):
    event_type: str = "error"
    error: Exception | None = None


class Provider(abc.ABC):
    """Abstract provider interface.

    Implementations wrap one vendor API:
    - OpenAIProvider: OpenAI Responses API over SSE
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider name (e.g. 'openai')."""

    @property
    @abc.abstractmethod
    def model(self) -> str:
        """Model id used for the next request."""

    @abc.abstractmethod
    async def send_message(
        self,
        request: Request,
        cancel: CancelToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Start a streaming model turn.

        Transport failures and non-2xx answers raise ProviderError
        before any event is produced. Once the iterator is returned,
        failures arrive as a single StreamError and the iterator
        yields exactly one terminal event (StreamDone or StreamError)
        before it ends.
        """

    @abc.abstractmethod
    async def list_models(self) -> list[str]:
        """Return the sorted ids of the chat-capable models."""

    @abc.abstractmethod
    def set_api_key(self, api_key: str) -> None:
        """Replace the credential used by future requests."""

    @abc.abstractmethod
    def set_model(self, model: str) -> None:
        """Replace the model used by future requests."""
