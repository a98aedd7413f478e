"""Conversation view — scrollable message area with streaming assistant output."""

from __future__ import annotations

from datetime import datetime

from textual.app import ComposeResult
from textual.containers import VerticalScroll
from textual.css.query import NoMatches
from textual.widget import Widget
from textual.widgets import Markdown, Static
from textual.widgets.markdown import MarkdownStream

from wright.engine.agent import summarize_arguments
from wright.shared.models.message import Message, MessageRole, ToolCall


def _esc(text: str) -> str:
    """Escape Rich markup characters in dynamic content."""
    return text.replace("[", "\\[")


def _timestamp(ts: datetime) -> str:
    return f"[dim]{ts.astimezone().strftime('%H:%M:%S')}[/dim]"


class MessageWidget(Widget):
    """A single rendered message with timestamp and role badge."""

    DEFAULT_CSS = """
    MessageWidget {
        height: auto;
        margin: 0 0 1 0;
    }
    MessageWidget .msg-header {
        height: auto;
    }
    MessageWidget .msg-body {
        height: auto;
        margin: 0;
        padding: 0;
    }
    """

    def __init__(self, message: Message, **kwargs) -> None:
        self.message = message
        css_class = {
            MessageRole.USER: "message-user",
            MessageRole.ASSISTANT: "message-assistant",
        }.get(message.role, "message-system")
        super().__init__(classes=css_class, **kwargs)

    def compose(self) -> ComposeResult:
        msg = self.message
        ts = _timestamp(msg.created_at)
        if msg.role == MessageRole.USER:
            yield Static(f"[bold $primary]You[/bold $primary] {ts}", classes="msg-header")
            yield Markdown(msg.content, classes="msg-body")
        elif msg.role == MessageRole.ASSISTANT:
            yield Static(f"[bold cyan]Assistant[/bold cyan] {ts}", classes="msg-header")
            if msg.content:
                yield Markdown(msg.content, classes="msg-body")
        else:
            yield Static(f"[dim]System[/dim] {ts} {_esc(msg.content)}")


class ToolCallLine(Static):
    """One-line summary of a tool call, updated when its result arrives."""

    DEFAULT_CSS = """
    ToolCallLine {
        height: auto;
        padding: 0 2;
    }
    """

    def __init__(self, call_id: str, tool_name: str, **kwargs) -> None:
        self.call_id = call_id
        self.tool_name = tool_name
        self._summary = ""
        super().__init__(self._render_line("pending"), classes="tool-call", **kwargs)

    def _render_line(self, status: str, detail: str = "") -> str:
        icon, color = {
            "pending": ("⏳", "yellow"),
            "done": ("✔", "green"),
            "error": ("✘", "red"),
        }[status]
        line = f"[{color}]{icon}[/{color}] [bold]{_esc(self.tool_name)}[/bold]"
        if self._summary:
            line += f" [dim]{_esc(self._summary)}[/dim]"
        if detail:
            line += f"\n    [{color}]{_esc(detail)}[/{color}]"
        return line

    def set_arguments(self, summary: str) -> None:
        first = summary.splitlines()[0] if summary else ""
        self._summary = first if len(first) <= 80 else first[:77] + "..."
        self.update(self._render_line("pending"))

    def set_result(self, output: str, is_error: bool) -> None:
        detail = ""
        if is_error:
            detail = output.splitlines()[0] if output else "error"
        self.update(self._render_line("error" if is_error else "done", detail))


class ConversationView(Widget):
    """Scrollable conversation pane for the active session."""

    DEFAULT_CSS = """
    ConversationView {
        height: 1fr;
    }
    ConversationView #message-container {
        padding: 0 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._stream: MarkdownStream | None = None
        self._stream_text: list[str] = []
        self._tool_lines: dict[str, ToolCallLine] = {}

    def compose(self) -> ComposeResult:
        yield VerticalScroll(id="message-container")

    # ── Scroll helpers ──

    def _message_container(self) -> VerticalScroll | None:
        try:
            return self.query_one("#message-container", VerticalScroll)
        except NoMatches:
            return None

    def is_near_bottom(self) -> bool:
        """Check if the scroll container is at or near the bottom."""
        container = self._message_container()
        if container is None:
            return False
        if container.max_scroll_y == 0:
            return True
        return container.scroll_y >= container.max_scroll_y - 3

    def _smart_scroll(self) -> None:
        """Scroll to bottom only if already near the bottom."""
        if self.is_near_bottom():
            container = self._message_container()
            if container is not None:
                container.scroll_end(animate=False)

    def _mount(self, widget: Widget) -> None:
        container = self._message_container()
        if container is None:
            return
        follow = self.is_near_bottom()
        container.mount(widget)
        if follow:
            container.scroll_end(animate=False)

    # ── History ──

    def load_history(self, messages: list[Message]) -> None:
        """Replace the view with a session's stored messages."""
        container = self._message_container()
        if container is None:
            return
        container.remove_children()
        self._tool_lines.clear()
        results: dict[str, tuple[str, bool]] = {}
        for msg in messages:
            for result in msg.tool_results:
                results[result.tool_call_id] = (result.output, result.is_error)
        for msg in messages:
            if msg.role == MessageRole.TOOL:
                continue
            if msg.content or not msg.has_tool_calls:
                container.mount(MessageWidget(msg))
            for call in msg.tool_calls:
                line = self._tool_line(call)
                container.mount(line)
                if call.id in results:
                    line.set_result(*results[call.id])
        container.scroll_end(animate=False)

    def clear(self) -> None:
        container = self._message_container()
        if container is not None:
            container.remove_children()
        self._tool_lines.clear()
        self._stream = None
        self._stream_text = []

    # ── Messages ──

    def add_user_message(self, message: Message) -> None:
        self._mount(MessageWidget(message))

    def add_system_message(self, text: str) -> None:
        self._mount(Static(f"[dim]{_esc(text)}[/dim]", classes="message-system"))

    def add_error(self, text: str) -> None:
        self._mount(Static(f"[bold red]Error:[/bold red] {_esc(text)}", classes="message-error"))

    # ── Streaming ──

    @property
    def streaming(self) -> bool:
        return self._stream is not None

    async def begin_assistant_stream(self) -> None:
        """Mount an empty assistant message and open a Markdown stream into it."""
        await self.end_assistant_stream()
        container = self._message_container()
        if container is None:
            return
        header = Static(
            f"[bold cyan]Assistant[/bold cyan] {_timestamp(datetime.now().astimezone())}",
            classes="msg-header",
        )
        md = Markdown("", classes="message-assistant")
        follow = self.is_near_bottom()
        await container.mount(header)
        await container.mount(md)
        if follow:
            container.anchor()
        self._stream = Markdown.get_stream(md)
        self._stream_text = []

    async def write_stream(self, text: str) -> None:
        if self._stream is None:
            await self.begin_assistant_stream()
        if self._stream is None:
            return
        self._stream_text.append(text)
        await self._stream.write(text)

    async def end_assistant_stream(self) -> str:
        """Close the open stream, returning the text it received."""
        stream, self._stream = self._stream, None
        text = "".join(self._stream_text)
        self._stream_text = []
        if stream is not None:
            await stream.stop()
        return text

    # ── Tool calls ──

    def _tool_line(self, call: ToolCall) -> ToolCallLine:
        line = ToolCallLine(call.id, call.name)
        if call.arguments:
            line.set_arguments(summarize_arguments(call.arguments))
        self._tool_lines[call.id] = line
        return line

    def add_tool_call(self, call_id: str, tool_name: str) -> None:
        if call_id in self._tool_lines:
            return
        line = ToolCallLine(call_id, tool_name)
        self._tool_lines[call_id] = line
        self._mount(line)

    def update_tool_arguments(self, call_id: str, summary: str) -> None:
        line = self._tool_lines.get(call_id)
        if line is not None:
            line.set_arguments(summary)

    def update_tool_result(self, call_id: str, output: str, is_error: bool) -> None:
        line = self._tool_lines.get(call_id)
        if line is not None:
            line.set_result(output, is_error)
            self._smart_scroll()
