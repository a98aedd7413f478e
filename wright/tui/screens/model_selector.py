"""Model picker modal.

Shows the provider's model catalog with a type-to-filter box. Dismisses
with the chosen model id, or None when cancelled.
"""
from __future__ import annotations

import time

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, OptionList, Static
from textual.widgets.option_list import Option

# Ignore input for a moment after mounting so the key that opened the
# modal does not also pick an entry.
_MOUNT_GUARD_SECONDS = 0.3


class ModelSelectorScreen(ModalScreen[str | None]):

    BINDINGS = [
        ("escape", "cancel", "Cancel"),
        ("down", "move_cursor(1)", "Next"),
        ("up", "move_cursor(-1)", "Previous"),
    ]

    CSS = """
    ModelSelectorScreen {
        align: center middle;
    }
    #picker {
        width: 64;
        height: auto;
        max-height: 34;
        background: $surface;
        border: thick $accent;
        padding: 1 2;
    }
    #picker-title {
        width: 100%;
        text-align: center;
        text-style: bold;
        color: $accent;
    }
    #picker-current {
        width: 100%;
        text-align: center;
        color: $text-muted;
    }
    #picker-filter {
        margin: 1 0 0 0;
    }
    #picker-options {
        height: auto;
        max-height: 22;
    }
    #picker-hint {
        color: $text-muted;
    }
    """

    def __init__(self, models: list[str], current_model: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self._models = list(models)
        self._current_model = current_model
        self._opened_at = 0.0

    def compose(self) -> ComposeResult:
        with Vertical(id="picker"):
            yield Static("Select Model", id="picker-title")
            yield Static(
                f"Current: [bold]{self._current_model or 'none'}[/bold]",
                id="picker-current",
            )
            yield Input(placeholder="Filter models…", id="picker-filter")
            yield OptionList(*self._options(""), id="picker-options")
            yield Static(
                "[dim]Enter select · Esc cancel[/dim]", id="picker-hint",
            )

    def _options(self, needle: str) -> list[Option]:
        needle = needle.strip().lower()
        options = []
        for model_id in self._models:
            if needle and needle not in model_id.lower():
                continue
            label = model_id + ("  ✓" if model_id == self._current_model else "")
            options.append(Option(label, id=model_id))
        return options

    def on_mount(self) -> None:
        self._opened_at = time.monotonic()
        options = self.query_one("#picker-options", OptionList)
        if self._current_model in self._models:
            options.highlighted = self._models.index(self._current_model)
        self.query_one("#picker-filter", Input).focus()

    def _settling(self) -> bool:
        return time.monotonic() - self._opened_at < _MOUNT_GUARD_SECONDS

    def on_input_changed(self, event: Input.Changed) -> None:
        options = self.query_one("#picker-options", OptionList)
        options.clear_options()
        options.add_options(self._options(event.value))
        if options.option_count:
            options.highlighted = 0

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        options = self.query_one("#picker-options", OptionList)
        if options.highlighted is None or self._settling():
            return
        self.dismiss(options.get_option_at_index(options.highlighted).id)

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        if self._settling():
            return
        self.dismiss(event.option.id)

    def action_move_cursor(self, step: int) -> None:
        options = self.query_one("#picker-options", OptionList)
        if step > 0:
            options.action_cursor_down()
        else:
            options.action_cursor_up()

    def action_cancel(self) -> None:
        self.dismiss(None)
