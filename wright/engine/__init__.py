"""Agent engine: provider adapters, tools, permission gate and the agent loop."""
from .models import AgentMode, AgentState
from .config import AppConfig
from .cancellation import CancelToken
from .errors import (
    ConfigError,
    MaxIterationsError,
    ProviderError,
    ProviderHTTPError,
    ProviderNotAvailableError,
    RunCancelledError,
    StoreError,
    StreamFailedError,
    ToolError,
    WrightError,
)

__all__ = [
    "AgentMode",
    "AgentState",
    "AppConfig",
    "CancelToken",
    "ConfigError",
    "MaxIterationsError",
    "ProviderError",
    "ProviderHTTPError",
    "ProviderNotAvailableError",
    "RunCancelledError",
    "StoreError",
    "StreamFailedError",
    "ToolError",
    "WrightError",
]
