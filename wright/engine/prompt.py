"""System prompt assembly."""
from __future__ import annotations

import logging
import platform
from datetime import datetime
from importlib import resources
from pathlib import Path

from wright.engine.models import AgentMode
from wright.engine.tools.base import Tool

logger = logging.getLogger(__name__)

_PROMPTS_PACKAGE = "wright.engine.prompts"

_PLAN_INSTRUCTIONS = """\
# Mode: PLAN

You are in PLAN mode. Analyze and reason about the codebase but do NOT modify it.
- Tools that modify files or run commands (write, edit, bash) are not available in this mode.
- Explore the codebase with the read-only tools (glob, grep, ls, view) BEFORE answering questions about it.
- Reference specific files, functions, types and patterns from this codebase rather than giving generic advice.
- When asked how to do something, find existing examples in the codebase first and base your plan on them.
- When asked about changes, explain what you would change and where, with file paths and line numbers.
- If the user wants the changes executed, remind them to switch to BUILD mode (ctrl+t).
"""

_BUILD_INSTRUCTIONS = """\
# Mode: BUILD

You are in BUILD mode. You can create and edit files and run commands.
- Use the available tools to implement changes.
- Be careful with destructive operations.
- Verify your changes work when possible.
"""


def _read_prompt(name: str) -> str | None:
    try:
        return resources.files(_PROMPTS_PACKAGE).joinpath(f"{name}.md").read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return None


def core_prompt(model: str) -> str:
    """Model-specific prompt if one is packaged, else the default prompt."""
    if model and "/" not in model and "\\" not in model:
        text = _read_prompt(model)
        if text is not None:
            return text
    text = _read_prompt("default")
    if text is None:
        raise RuntimeError("packaged prompt default.md is missing")
    return text


def build_system_prompt(
    mode: AgentMode,
    model: str,
    work_dir: Path | str,
    tools: list[Tool],
    now: datetime | None = None,
) -> str:
    """Assemble the system prompt for one run.

    ``tools`` should be the tools declared to the model in ``mode``.
    """
    now = now or datetime.now()
    parts = [core_prompt(model).rstrip(), ""]

    parts.append("# Environment\n")
    parts.append(f"- Working directory: {work_dir}")
    parts.append(f"- Platform: {platform.system().lower()}/{platform.machine().lower()}")
    parts.append(f"- Date: {now.strftime('%a %b %d %Y')}")
    parts.append(f"- Mode: {mode.value}")
    parts.append("")
    parts.append(
        "The working directory is the root of the project you are helping the user "
        "with. Interpret requests in the context of this directory, operate within it "
        "by default, and use relative paths when referring to project files.\n"
    )

    parts.append(_PLAN_INSTRUCTIONS if mode == AgentMode.PLAN else _BUILD_INSTRUCTIONS)

    parts.append("# Available Tools\n")
    for tool in tools:
        parts.append(f"## {tool.name}\n{tool.description}\n")

    prompt = "\n".join(parts)
    logger.debug("Built system prompt mode=%s model=%s chars=%d", mode.value, model, len(prompt))
    return prompt
