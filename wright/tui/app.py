"""Wright TUI — Textual application class."""

from __future__ import annotations

from textual.app import App

from wright import __version__
from wright.engine.agent import Agent
from wright.engine.config import AppConfig
from wright.shared.services.sessions import SessionService
from wright.tui.screens.main import MainScreen


class WrightApp(App):
    """Terminal UI for the coding assistant."""

    TITLE = "Wright"
    SUB_TITLE = f"v{__version__}"

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("escape", "cancel_run", "Cancel"),
        ("ctrl+t", "toggle_mode", "Plan/Build"),
        ("ctrl+k", "open_settings", "Settings"),
        ("ctrl+n", "new_session", "New Session"),
        ("ctrl+l", "toggle_tool_log", "Tool Log"),
        ("f1", "open_help", "Help"),
    ]

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

    def on_mount(self) -> None:
        self.push_screen(MainScreen(self.config, self.sessions, self.agent))

    def _main_screen(self) -> MainScreen | None:
        screen = self.screen
        return screen if isinstance(screen, MainScreen) else None

    def action_cancel_run(self) -> None:
        screen = self._main_screen()
        if screen is not None:
            screen.cancel_run()

    def action_toggle_mode(self) -> None:
        screen = self._main_screen()
        if screen is not None:
            screen.toggle_mode()

    def action_new_session(self) -> None:
        screen = self._main_screen()
        if screen is not None:
            screen.new_session()

    def action_toggle_tool_log(self) -> None:
        screen = self._main_screen()
        if screen is not None:
            screen.toggle_tool_log()

    def action_open_settings(self) -> None:
        """Open the settings menu."""
        from wright.tui.screens.settings import SettingsScreen

        screen = self._main_screen()
        if screen is None:
            return

        def on_dismiss(saved: bool | None) -> None:
            if saved:
                screen.settings_saved()

        self.push_screen(
            SettingsScreen(self.config, self.agent.provider, self.agent),
            callback=on_dismiss,
        )

    def action_open_help(self) -> None:
        from wright.tui.screens.help import HelpScreen

        if isinstance(self.screen, MainScreen):
            self.push_screen(HelpScreen())

    async def action_quit(self) -> None:
        screen = self._main_screen()
        if screen is not None:
            screen.cancel_run()
        await super().action_quit()
