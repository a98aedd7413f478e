"""Status bar — bottom bar showing mode, model and run state."""

from __future__ import annotations

import time

from rich.text import Text
from textual.reactive import reactive
from textual.timer import Timer
from textual.widget import Widget


def _format_elapsed(seconds: float) -> str:
    """Format elapsed seconds into a human-readable string."""
    secs = int(seconds)
    if secs < 60:
        return f"{secs}s"
    m, s = divmod(secs, 60)
    return f"{m}m {s}s"


class StatusBar(Widget):
    """Single-line status bar."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        dock: bottom;
        background: $panel;
    }
    """

    mode: reactive[str] = reactive("plan")
    model: reactive[str] = reactive("—")
    message_count: reactive[int] = reactive(0)
    tokens_used: reactive[int] = reactive(0)
    status: reactive[str] = reactive("ready")

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._started_at: float | None = None
        self._elapsed_timer: Timer | None = None

    def watch_status(self, old_value: str, new_value: str) -> None:
        """Track elapsed time while the agent is thinking."""
        if new_value == "thinking" and old_value != "thinking":
            self._started_at = time.monotonic()
            if self._elapsed_timer is None:
                self._elapsed_timer = self.set_interval(1.0, self.refresh)
        elif old_value == "thinking" and new_value != "thinking":
            self._started_at = None
            if self._elapsed_timer is not None:
                self._elapsed_timer.stop()
                self._elapsed_timer = None

    def render(self) -> Text:
        status_colors = {
            "ready": "green",
            "thinking": "yellow",
            "cancelling": "yellow",
            "error": "red bold",
        }
        color = status_colors.get(self.status, "white")
        mode_style = "bold black on cyan" if self.mode == "plan" else "bold black on magenta"

        bar = Text()
        bar.append(f" {self.mode.upper()} ", style=mode_style)
        bar.append(" │ ", style="dim")
        bar.append(self.model, style="cyan")
        bar.append(" │ ", style="dim")
        bar.append(f"{self.message_count} msgs", style="dim")
        bar.append(" │ ", style="dim")
        bar.append(f"{self.tokens_used:,} tokens", style="dim")
        bar.append(" │ ", style="dim")

        status_display = f"● {self.status}"
        if self._started_at is not None:
            status_display += f" ({_format_elapsed(time.monotonic() - self._started_at)})"
        bar.append(status_display, style=color)
        return bar
