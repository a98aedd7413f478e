"""Permission gate for tools that need human approval.

The gate publishes one PermissionRequest at a time on a single-slot
queue. The UI takes it with ``next_request()``, shows a dialog and
answers through ``request.respond()``. Cancelling the caller's token
while publishing or waiting resolves to DENY; the gate never falls
back to ALLOW.

"Allow for session" remembers the tool name in memory until
``reset()`` or process exit. The scope is the tool name only, so
allowing one ``write`` allows every later ``write``.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum

from wright.adapters.events import PermissionRequest, PermissionResponse
from wright.engine.cancellation import CancelToken, guarded
from wright.engine.errors import RunCancelledError

logger = logging.getLogger(__name__)


class PermissionDecision(Enum):
    ALLOW = "allow"
    DENY = "deny"


class PermissionGate:
    """Mediates approval for permissioned tool calls."""

    def __init__(self) -> None:
        self._requests: asyncio.Queue[PermissionRequest] = asyncio.Queue(maxsize=1)
        self._session_allowed: set[str] = set()
        self._lock = threading.Lock()

    def is_allowed(self, tool_name: str) -> bool:
        with self._lock:
            return tool_name in self._session_allowed

    def allow_for_session(self, tool_name: str) -> None:
        with self._lock:
            self._session_allowed.add(tool_name)
        logger.info("Tool %s allowed for the rest of the session", tool_name)

    def reset(self) -> None:
        """Forget every session-wide approval."""
        with self._lock:
            self._session_allowed.clear()
        logger.info("Permission allowlist cleared")

    async def next_request(self) -> PermissionRequest:
        """Wait for the next pending request (UI side).

        Requests whose caller already gave up are skipped.
        """
        while True:
            request = await self._requests.get()
            if not request.answered:
                return request
            logger.debug("Dropping stale permission request %s", request.request_id)

    async def check(
        self,
        tool_name: str,
        summary: str,
        cancel: CancelToken | None = None,
    ) -> PermissionDecision:
        """Ask the user whether ``tool_name`` may run."""
        if self.is_allowed(tool_name):
            logger.debug("Tool %s is session-allowed", tool_name)
            return PermissionDecision.ALLOW
        if cancel is not None and cancel.is_cancelled:
            return PermissionDecision.DENY

        request = PermissionRequest(tool_name=tool_name, summary=summary)
        try:
            await guarded(cancel, self._requests.put(request))
        except RunCancelledError:
            request.abandon()
            logger.info("Permission for %s denied: cancelled before publish", tool_name)
            return PermissionDecision.DENY

        logger.info("Permission requested for %s (%s)", tool_name, request.request_id)
        try:
            response = await guarded(cancel, request.wait())
        except RunCancelledError:
            request.abandon()
            logger.info("Permission for %s denied: cancelled while waiting", tool_name)
            return PermissionDecision.DENY

        logger.info("Permission for %s answered: %s", tool_name, response.value)
        if response == PermissionResponse.ALLOW_FOR_SESSION:
            self.allow_for_session(tool_name)
            return PermissionDecision.ALLOW
        if response == PermissionResponse.ALLOW:
            return PermissionDecision.ALLOW
        return PermissionDecision.DENY
