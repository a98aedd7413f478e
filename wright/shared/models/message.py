"""Message and tool call models."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Build a sortable id like ``msg_20260101120000_0123456789abcdef``."""
    return f"{prefix}_{_utcnow().strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(8)}"


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "input": self.arguments}

    @classmethod
    def from_dict(cls, data: dict) -> ToolCall:
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            arguments=data.get("input", ""),
        )


@dataclass
class ToolResult:
    tool_call_id: str
    name: str
    output: str
    is_error: bool = False

    def to_dict(self) -> dict:
        return {
            "tool_call_id": self.tool_call_id,
            "name": self.name,
            "output": self.output,
            "is_error": self.is_error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ToolResult:
        return cls(
            tool_call_id=data.get("tool_call_id", ""),
            name=data.get("name", ""),
            output=data.get("output", ""),
            is_error=bool(data.get("is_error", False)),
        )


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Message:
    """One turn of a conversation.

    A message carries tool calls (assistant requesting tools), tool
    results (tool role), or neither. Never both.
    """
    role: MessageRole
    content: str = ""
    session_id: str = ""
    id: str = field(default_factory=lambda: generate_id("msg"))
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.tool_calls and self.tool_results:
            raise ValueError("a message cannot carry both tool calls and tool results")
        if self.tool_calls and self.role != MessageRole.ASSISTANT:
            raise ValueError("tool calls are only valid on assistant messages")
        if self.tool_results and self.role != MessageRole.TOOL:
            raise ValueError("tool results are only valid on tool messages")

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


def user_message(session_id: str, content: str) -> Message:
    return Message(role=MessageRole.USER, content=content, session_id=session_id)


def tool_result_message(session_id: str, results: list[ToolResult]) -> Message:
    return Message(
        role=MessageRole.TOOL,
        session_id=session_id,
        tool_results=list(results),
    )
