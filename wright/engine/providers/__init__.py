"""LLM provider abstraction."""
from .base import (
    Provider,
    Request,
    StreamDone,
    StreamError,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    ToolDefinition,
)
from .openai_provider import OpenAIProvider
from .registry import ProviderRegistry, build_provider, build_provider_registry

__all__ = [
    "Provider",
    "Request",
    "StreamDone",
    "StreamError",
    "StreamEvent",
    "TextDelta",
    "ToolCallDelta",
    "ToolCallEnd",
    "ToolCallStart",
    "ToolDefinition",
    "OpenAIProvider",
    "ProviderRegistry",
    "build_provider",
    "build_provider_registry",
]
