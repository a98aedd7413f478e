"""Adapters package - events passed from the agent engine to the UI."""
from __future__ import annotations

__all__ = [
    "AgentEvent",
    "PermissionRequest",
    "PermissionResponse",
]

from wright.adapters.events import AgentEvent, PermissionRequest, PermissionResponse
