"""Tool log — collapsible RichLog panel for tool calls and system events."""

from __future__ import annotations

from textual.widgets import RichLog


def _esc(text: str) -> str:
    return text.replace("[", "\\[")


class ToolLog(RichLog):
    """Collapsible log of tool calls and their results."""

    DEFAULT_CSS = """
    ToolLog {
        height: 10;
        display: none;
        border-top: solid $primary-darken-2;
    }
    ToolLog.visible {
        display: block;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(
            auto_scroll=True,
            wrap=True,
            markup=True,
            highlight=True,
            max_lines=5000,
            **kwargs,
        )

    def log_tool_call(self, tool: str, args: str) -> None:
        self.write(f"[bold cyan]{_esc(tool)}[/bold cyan]")
        if args:
            self.write(f"  {_esc(args[:500])}")

    def log_tool_result(self, tool: str, result: str, success: bool = True) -> None:
        color = "green" if success else "red"
        label = "Result" if success else "Error"
        preview = result if len(result) <= 500 else result[:500] + "..."
        self.write(f"  [{color}]{label} ({_esc(tool)}):[/{color}] {_esc(preview)}")

    def toggle(self) -> None:
        self.toggle_class("visible")
