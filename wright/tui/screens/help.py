"""Help modal showing key bindings."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Static


class HelpScreen(ModalScreen[None]):
    """Display usage instructions and keyboard shortcuts."""

    BINDINGS = [
        ("escape", "close", "Close"),
        ("f1", "close", "Close"),
    ]

    CSS = """
    HelpScreen {
        align: center middle;
    }
    HelpScreen > Vertical {
        width: 64;
        height: auto;
        background: $surface;
        border: thick $primary;
        padding: 1 2;
    }
    HelpScreen #help-body {
        margin: 1 0;
    }
    """

    def compose(self) -> ComposeResult:
        with Vertical(id="help-dialog"):
            yield Static("[bold $primary]Wright Help[/bold $primary]", id="help-title")
            yield Static(
                "[bold]Keyboard shortcuts[/bold]\n"
                "- `Enter`: send prompt, `Shift+Enter`: newline\n"
                "- `Esc`: cancel the running request\n"
                "- `Ctrl+T`: toggle PLAN / BUILD mode\n"
                "- `Ctrl+K`: settings (API key, model)\n"
                "- `Ctrl+N`: new session\n"
                "- `Ctrl+L`: toggle tool log\n"
                "- `F1`: this help\n"
                "- `Ctrl+Q`: quit\n\n"
                "[bold]Modes[/bold]\n"
                "- PLAN: read-only tools (view, ls, glob, grep, fetch)\n"
                "- BUILD: adds bash, write and edit, each asking permission\n\n"
                "[bold]Permission dialog[/bold]\n"
                "- `y` allow once, `a` allow for this session, `n` deny",
                id="help-body",
            )
            yield Button("Close", id="help-close", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "help-close":
            self.dismiss(None)

    def action_close(self) -> None:
        self.dismiss(None)
