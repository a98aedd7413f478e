"""glob — recursive file pattern matching."""
from __future__ import annotations

import glob as globlib
import os
import re
from pathlib import Path
from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import ToolError
from .base import Tool, parse_arguments, schema

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, which the stdlib glob lacks."""
    match = _BRACE_RE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def match_files(base_dir: Path, pattern: str) -> list[str]:
    """Return sorted unique paths under ``base_dir`` matching ``pattern``."""
    found: set[str] = set()
    for variant in expand_braces(pattern):
        full = variant if os.path.isabs(variant) else os.path.join(str(base_dir), variant)
        found.update(globlib.glob(full, recursive=True))
    return sorted(found)


class GlobTool(Tool):

    @property
    def name(self) -> str:
        return "glob"

    @property
    def description(self) -> str:
        return (
            'Fast file pattern matching tool. Supports glob patterns like "**/*.py" '
            'or "src/**/*.ts". Returns matching file paths sorted by name.'
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema(
            {
                "pattern": {
                    "type": "string",
                    "description": 'The glob pattern to match files against (e.g. "**/*.py", "src/**/*.ts")',
                },
                "path": {
                    "type": "string",
                    "description": "The directory to search in. Defaults to the working directory.",
                },
            },
            required=["pattern"],
        )

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        pattern = params.get("pattern") or ""
        if not pattern:
            raise ToolError("pattern is required")
        base_dir = self.resolve(params.get("path") or "")

        matches = match_files(base_dir, pattern)
        if not matches:
            return "No files matched the pattern."
        return "\n".join(self.relative(m) for m in matches)
