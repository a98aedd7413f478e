"""Exception hierarchy for the wright engine.

One exception per failure mode. Structured fields are kept on the
instance so the UI and tests can inspect them without parsing text.
"""
from __future__ import annotations


class WrightError(Exception):
    """Base exception for all wright errors."""


class ConfigError(WrightError):
    """A configuration file could not be read or is invalid."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid config {path}: {reason}")


class ProviderError(WrightError):
    """A provider request could not be constructed or sent."""


class ProviderHTTPError(ProviderError):
    """The provider answered with a non-2xx status."""
    def __init__(self, provider: str, status: int, body: str):
        self.provider = provider
        self.status = status
        self.body = body
        super().__init__(f"{provider} API error (HTTP {status}): {body}")


class ProviderNotAvailableError(ProviderError):
    """No provider is registered under the configured name."""
    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        super().__init__(
            f"Unknown provider '{name}' (available: {', '.join(available) or 'none'})"
        )


class StreamFailedError(WrightError):
    """The provider reported a terminal failure inside the stream."""
    def __init__(self, message: str, code: str | None = None):
        self.code = code
        self.message = message
        if code:
            super().__init__(f"{message} ({code})")
        else:
            super().__init__(message)


class RunCancelledError(WrightError):
    """The run was cancelled by its caller."""
    def __init__(self, cause: str = "cancelled"):
        self.cause = cause
        super().__init__(f"Run cancelled: {cause}")


class MaxIterationsError(WrightError):
    """The agent hit its iteration cap without a tool-free turn."""
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Agent reached maximum iterations ({limit})")


class ToolError(WrightError):
    """A tool rejected its input or failed while running."""


class StoreError(WrightError):
    """A session or message could not be found or written."""
