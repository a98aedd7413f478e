"""Core enums for the agent engine."""
from __future__ import annotations

from enum import Enum


class AgentMode(str, Enum):
    """Operating mode. PLAN hides every permissioned tool from the model."""
    PLAN = "plan"
    BUILD = "build"

    def toggled(self) -> AgentMode:
        return AgentMode.BUILD if self == AgentMode.PLAN else AgentMode.PLAN


class AgentState(str, Enum):
    """Agent loop states."""
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"
