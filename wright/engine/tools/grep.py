"""grep — regex search over file contents."""
from __future__ import annotations

import logging
import os
import re
from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import ToolError
from .base import Tool, parse_arguments, schema
from .glob import match_files

logger = logging.getLogger(__name__)

MAX_RESULTS = 100
MAX_FILE_BYTES = 1 << 20


class GrepTool(Tool):

    @property
    def name(self) -> str:
        return "grep"

    @property
    def description(self) -> str:
        return (
            "Fast content search tool. Searches file contents using regular "
            "expressions. Returns file paths and line numbers with matching content."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema(
            {
                "pattern": {
                    "type": "string",
                    "description": "The regex pattern to search for in file contents.",
                },
                "path": {
                    "type": "string",
                    "description": "The directory to search in. Defaults to the working directory.",
                },
                "include": {
                    "type": "string",
                    "description": 'File pattern to include in the search (e.g. "*.py", "*.{ts,tsx}").',
                },
            },
            required=["pattern"],
        )

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        pattern = params.get("pattern") or ""
        if not pattern:
            raise ToolError("pattern is required")
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise ToolError(f"invalid regex pattern: {exc}") from exc

        base_dir = self.resolve(params.get("path") or "")
        include = params.get("include") or "*"
        files = match_files(base_dir, f"**/{include}")

        results: list[str] = []
        for file_path in files:
            if cancel is not None and cancel.is_cancelled:
                break
            try:
                if os.path.isdir(file_path) or os.path.getsize(file_path) > MAX_FILE_BYTES:
                    continue
                handle = open(file_path, encoding="utf-8", errors="replace")
            except OSError:
                continue
            rel = self.relative(file_path)
            with handle:
                for number, line in enumerate(handle, start=1):
                    line = line.rstrip("\r\n")
                    if not regex.search(line):
                        continue
                    results.append(f"{rel}:{number}: {line}")
                    if len(results) >= MAX_RESULTS:
                        results.append(f"\n(truncated at {MAX_RESULTS} results)")
                        return "\n".join(results)

        if not results:
            return "No matches found."
        return "\n".join(results)
