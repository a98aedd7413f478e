"""Main screen — conversation, prompt input and status bar."""

from __future__ import annotations

import logging

from textual import work
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import Header

from wright.adapters.events import (
    AgentDone,
    AgentError,
    AgentEvent,
    PermissionRequest,
    PermissionResponse,
    PersistMessage,
    StreamText,
    ToolCallFinished,
    ToolCallStarted,
    ToolResultEvent,
)
from wright.engine.agent import Agent, summarize_arguments
from wright.engine.cancellation import CancelToken
from wright.engine.config import AppConfig
from wright.engine.errors import StoreError
from wright.shared.models.message import user_message
from wright.shared.services.sessions import SessionService
from wright.tui.screens.permission import PermissionScreen
from wright.tui.widgets.conversation import ConversationView
from wright.tui.widgets.input_bar import InputBar
from wright.tui.widgets.status_bar import StatusBar
from wright.tui.widgets.tool_log import ToolLog

logger = logging.getLogger(__name__)


def _esc(text: str) -> str:
    return text.replace("[", "\\[")


class MainScreen(Screen):
    """Primary workspace: one conversation with the agent."""

    def __init__(
        self,
        config: AppConfig,
        sessions: SessionService,
        agent: Agent,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.sessions = sessions
        self.agent = agent
        self._cancel: CancelToken | None = None

    @property
    def running(self) -> bool:
        return self._cancel is not None

    def compose(self) -> ComposeResult:
        yield Header()
        yield ConversationView(id="conversation")
        yield ToolLog(id="tool-log")
        yield InputBar(id="input-bar")
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        session = self.sessions.current()
        self.app.sub_title = session.title
        conv = self.query_one("#conversation", ConversationView)
        try:
            conv.load_history(self.sessions.get_messages())
        except StoreError as exc:
            logger.warning("Could not load session %s: %s", session.id, exc)
            conv.add_error(str(exc))
        self._refresh_status()
        self._listen_for_permissions()
        self.query_one(InputBar).focus_input()

    def _refresh_status(self) -> None:
        sb = self.query_one("#status-bar", StatusBar)
        sb.mode = self.agent.mode.value
        sb.model = self.agent.provider.model
        try:
            sb.message_count = self.sessions.message_count()
            sb.tokens_used = self.sessions.token_total()
        except StoreError:
            logger.warning("Could not read session totals", exc_info=True)

    # ── Prompt submission ──

    def on_input_bar_submitted(self, event: InputBar.Submitted) -> None:
        if self.running:
            self.notify("The agent is still working. Press Esc to cancel.", severity="warning")
            return
        session = self.sessions.current()
        message = user_message(session.id, event.text)
        try:
            self.sessions.add_message(message)
        except StoreError as exc:
            logger.error("Could not store prompt: %s", exc)
            self._show_error_in_conversation(str(exc))
            return
        self.sessions.title_if_default(event.text)
        self.app.sub_title = self.sessions.current().title
        self.query_one("#conversation", ConversationView).add_user_message(message)
        self._run_agent()

    @work(exclusive=True, group="agent", name="agent-run")
    async def _run_agent(self) -> None:
        """Background worker: one agent run for the latest prompt."""
        sb = self.query_one("#status-bar", StatusBar)
        conv = self.query_one("#conversation", ConversationView)
        input_bar = self.query_one(InputBar)

        cancel = CancelToken()
        self._cancel = cancel
        sb.status = "thinking"
        input_bar.set_busy(True)
        failed = False
        try:
            session = self.sessions.current()
            history = self.sessions.get_messages()
            async for event in self.agent.run(history, session.id, cancel):
                if isinstance(event, AgentError) and not event.cancelled:
                    failed = True
                await self._handle_event(event)
        except StoreError as exc:
            failed = True
            logger.error("Agent run aborted by store error: %s", exc)
            self._show_error_in_conversation(str(exc))
        finally:
            await conv.end_assistant_stream()
            self._cancel = None
            input_bar.set_busy(False)
            self._refresh_status()
            sb.status = "error" if failed else "ready"

    async def _handle_event(self, event: AgentEvent) -> None:
        conv = self.query_one("#conversation", ConversationView)
        tl = self.query_one("#tool-log", ToolLog)

        if isinstance(event, StreamText):
            await conv.write_stream(event.text)

        elif isinstance(event, ToolCallStarted):
            await conv.end_assistant_stream()
            conv.add_tool_call(event.call_id, event.tool_name)

        elif isinstance(event, ToolCallFinished):
            summary = summarize_arguments(event.arguments)
            conv.update_tool_arguments(event.call_id, summary)
            tl.log_tool_call(event.tool_name, summary)

        elif isinstance(event, ToolResultEvent):
            conv.update_tool_result(event.call_id, event.output, event.is_error)
            tl.log_tool_result(event.tool_name, event.output, success=not event.is_error)

        elif isinstance(event, PersistMessage):
            await conv.end_assistant_stream()
            if event.message is not None:
                self.sessions.add_message(event.message)
            self._refresh_status()

        elif isinstance(event, AgentDone):
            await conv.end_assistant_stream()
            if event.message is not None:
                self.sessions.add_message(event.message)

        elif isinstance(event, AgentError):
            await conv.end_assistant_stream()
            if event.cancelled:
                conv.add_system_message("Agent cancelled.")
                tl.write("[yellow]Run cancelled[/yellow]")
            else:
                self._show_error_in_conversation(str(event.error))

    def _show_error_in_conversation(self, error_msg: str) -> None:
        """Show an error in the conversation and open the tool log."""
        self.query_one("#conversation", ConversationView).add_error(error_msg)
        tl = self.query_one("#tool-log", ToolLog)
        tl.write(f"[red]Error:[/red] {_esc(error_msg)}")
        if not tl.has_class("visible"):
            tl.toggle()

    # ── Permissions ──

    @work(group="permissions", name="permission-listener")
    async def _listen_for_permissions(self) -> None:
        """Show one PermissionScreen per request published by the gate."""
        while True:
            request = await self.agent.gate.next_request()
            await self._ask_permission(request)

    async def _ask_permission(self, request: PermissionRequest) -> None:
        def on_dismiss(result: PermissionResponse | None) -> None:
            request.respond(result or PermissionResponse.DENY)

        screen = PermissionScreen(request.tool_name, request.summary)
        self.app.push_screen(screen, callback=on_dismiss)
        await request.wait()
        # The run gave up on the request (cancelled) while the dialog was open.
        if self.app.screen is screen:
            await screen.dismiss(PermissionResponse.DENY)

    # ── Actions called by the app ──

    def cancel_run(self) -> None:
        if self._cancel is None:
            return
        self.query_one("#status-bar", StatusBar).status = "cancelling"
        self._cancel.cancel("cancelled by user")

    def toggle_mode(self) -> None:
        if self.running:
            self.notify("Cannot switch modes while the agent is running.", severity="warning")
            return
        self.agent.set_mode(self.agent.mode.toggled())
        self._refresh_status()
        self.notify(f"{self.agent.mode.value.upper()} mode")

    def new_session(self) -> None:
        if self.running:
            self.notify("Cancel the running request before starting a new session.", severity="warning")
            return
        session = self.sessions.create()
        self.app.sub_title = session.title
        self.query_one("#conversation", ConversationView).clear()
        self.query_one("#tool-log", ToolLog).write(f"[dim]New session {session.id}[/dim]")
        self._refresh_status()

    def toggle_tool_log(self) -> None:
        self.query_one("#tool-log", ToolLog).toggle()

    def settings_saved(self) -> None:
        self._refresh_status()
        self.notify(f"Settings saved. Model: {self.agent.provider.model}")
