"""Permission modal — asks the user to approve or deny a tool call."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Static

from wright.adapters.events import PermissionResponse


def _esc(text: str) -> str:
    return text.replace("[", "\\[")


class PermissionScreen(ModalScreen[PermissionResponse]):
    """Modal dialog for tool permission requests.

    Dismisses with a PermissionResponse. Escape counts as Deny.
    """

    BINDINGS = [
        ("y", "respond('allow')", "Allow"),
        ("a", "respond('allow_for_session')", "Allow for session"),
        ("n", "respond('deny')", "Deny"),
        ("escape", "respond('deny')", "Deny"),
    ]

    CSS = """
    PermissionScreen {
        align: center middle;
    }
    PermissionScreen > Vertical {
        width: 80;
        height: auto;
        max-height: 30;
        background: $surface;
        border: thick $warning;
        padding: 1 2;
    }
    PermissionScreen #permission-details {
        margin: 1 0;
        padding: 0 1;
        max-height: 18;
        overflow-y: auto;
        background: $panel;
    }
    PermissionScreen #permission-buttons {
        height: 3;
        align: center middle;
    }
    PermissionScreen #permission-buttons Button {
        margin: 0 1;
    }
    """

    def __init__(self, tool_name: str, summary: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self.tool_name = tool_name
        self.summary = summary

    def compose(self) -> ComposeResult:
        with Vertical(id="permission-dialog"):
            yield Static(
                "[bold $warning]Permission Request[/bold $warning]",
                id="permission-title",
            )
            yield Static(
                f"The assistant wants to use [cyan]{_esc(self.tool_name)}[/cyan]",
            )
            if self.summary:
                yield Static(_esc(self.summary), id="permission-details")
            with Horizontal(id="permission-buttons"):
                yield Button("Allow (y)", variant="success", id="btn-allow")
                yield Button("Allow for session (a)", variant="warning", id="btn-session")
                yield Button("Deny (n)", variant="error", id="btn-deny")

    def on_mount(self) -> None:
        self.query_one("#btn-allow", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        result_map = {
            "btn-allow": PermissionResponse.ALLOW,
            "btn-session": PermissionResponse.ALLOW_FOR_SESSION,
            "btn-deny": PermissionResponse.DENY,
        }
        self.dismiss(result_map.get(event.button.id, PermissionResponse.DENY))

    def action_respond(self, value: str) -> None:
        self.dismiss(PermissionResponse(value))
