"""Input bar — prompt input with Enter to submit and Shift+Enter for newlines."""

from __future__ import annotations

from textual import events
from textual.app import ComposeResult
from textual.message import Message
from textual.widget import Widget
from textual.widgets import TextArea


class PromptInput(TextArea):
    """TextArea that fires SubmitRequested on Enter (Shift+Enter for newlines)."""

    class SubmitRequested(Message):
        """Fired when bare Enter is pressed."""

    async def _on_key(self, event: events.Key) -> None:
        if event.key == "enter":
            event.stop()
            event.prevent_default()
            self.post_message(self.SubmitRequested())
            return
        if event.key == "shift+enter":
            event.stop()
            event.prevent_default()
            self._replace_via_keyboard("\n", *self.selection)
            return
        await super()._on_key(event)


class InputBar(Widget):
    """Prompt area docked above the status bar."""

    DEFAULT_CSS = """
    InputBar {
        height: auto;
        max-height: 10;
        dock: bottom;
        margin-bottom: 1;
    }
    InputBar PromptInput {
        height: auto;
        min-height: 3;
        max-height: 10;
        border: tall $primary;
    }
    InputBar.disabled PromptInput {
        border: tall $panel-lighten-2;
    }
    """

    class Submitted(Message):
        """Fired with the prompt text when the user submits."""

        def __init__(self, text: str) -> None:
            self.text = text
            super().__init__()

    def compose(self) -> ComposeResult:
        yield PromptInput(id="prompt-input", soft_wrap=True, show_line_numbers=False)

    def on_prompt_input_submit_requested(self, event: PromptInput.SubmitRequested) -> None:
        event.stop()
        prompt = self.query_one(PromptInput)
        text = prompt.text.strip()
        if not text:
            return
        prompt.clear()
        self.post_message(self.Submitted(text))

    def focus_input(self) -> None:
        self.query_one(PromptInput).focus()

    def set_busy(self, busy: bool) -> None:
        self.set_class(busy, "disabled")
