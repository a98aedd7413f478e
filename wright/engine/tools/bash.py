"""bash — run a shell command in the working directory."""
from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import RunCancelledError, ToolError
from .base import Tool, int_argument, parse_arguments, schema

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120
MAX_OUTPUT_CHARS = 50_000


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        if sys.platform.startswith("win"):
            proc.kill()
        else:
            os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        logger.debug("Process %s already gone", proc.pid)


class BashTool(Tool):
    requires_permission = True

    def __init__(self, work_dir: Path | str, shell: str = "/bin/bash") -> None:
        super().__init__(work_dir)
        self.shell = shell

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return (
            "Execute a bash command in the working directory. Returns stdout "
            "and stderr. Use this for running builds, tests, git commands, and "
            "other terminal operations."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema(
            {
                "command": {
                    "type": "string",
                    "description": "The bash command to execute.",
                },
                "timeout": {
                    "type": "number",
                    "description": "Optional timeout in seconds. Defaults to 120.",
                },
            },
            required=["command"],
        )

    def _shell_argv(self, command: str) -> list[str]:
        if os.path.basename(self.shell).lower().startswith("cmd"):
            return [self.shell, "/c", command]
        return [self.shell, "-c", command]

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        command = params.get("command")
        if not isinstance(command, str) or not command.strip():
            raise ToolError("command is required")
        timeout = int_argument(params, "timeout", DEFAULT_TIMEOUT_SECONDS)

        logger.info("bash cwd=%s timeout=%ss command=%.200s", self.work_dir, timeout, command)
        proc = await asyncio.create_subprocess_exec(
            *self._shell_argv(command),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.work_dir),
            start_new_session=not sys.platform.startswith("win"),
        )

        communicate = asyncio.wait_for(proc.communicate(), timeout=timeout)
        try:
            if cancel is not None:
                stdout, stderr = await cancel.guard(communicate)
            else:
                stdout, stderr = await communicate
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise ToolError(f"command timed out after {timeout}s") from None
        except RunCancelledError:
            _kill(proc)
            await proc.wait()
            raise ToolError("command cancelled") from None

        output = stdout.decode("utf-8", errors="replace")
        err_text = stderr.decode("utf-8", errors="replace")
        if err_text:
            if output:
                output += "\n"
            output += "STDERR:\n" + err_text

        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + "\n... (output truncated)"

        if proc.returncode != 0:
            logger.info("bash exited with code %s", proc.returncode)
            if not output:
                raise ToolError(f"command failed: exit code {proc.returncode}")
            return output + f"\n(exit code: {proc.returncode})"

        if not output:
            return "(no output)"
        return output
