"""Settings modal — API key, model and iteration cap.

Changes are applied to the live provider and agent on Save and written
to the user config file. Dismisses with True when something was saved.
"""
from __future__ import annotations

import logging

from textual import work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Static

from wright.engine.agent import Agent
from wright.engine.config import AppConfig
from wright.engine.errors import ProviderError
from wright.engine.providers.base import Provider
from wright.tui.screens.model_selector import ModelSelectorScreen

logger = logging.getLogger(__name__)


def _mask(key: str) -> str:
    if not key:
        return "not set"
    if len(key) <= 8:
        return "set"
    return f"{key[:3]}…{key[-4:]}"


class SettingsScreen(ModalScreen[bool]):
    """Edit provider credentials and agent limits."""

    BINDINGS = [
        ("escape", "close", "Close"),
    ]

    CSS = """
    SettingsScreen {
        align: center middle;
    }
    SettingsScreen > Vertical {
        width: 72;
        height: auto;
        background: $surface;
        border: thick $primary;
        padding: 1 2;
    }
    SettingsScreen .settings-desc {
        color: $text-muted;
    }
    SettingsScreen .settings-row {
        height: auto;
        margin: 0 0 1 0;
    }
    SettingsScreen #settings-model-btn {
        width: 100%;
    }
    SettingsScreen #settings-status {
        height: auto;
        margin: 1 0 0 0;
    }
    SettingsScreen #settings-actions {
        height: 3;
        align: center middle;
        margin-top: 1;
    }
    SettingsScreen #settings-actions Button {
        margin: 0 1;
    }
    """

    def __init__(
        self,
        config: AppConfig,
        provider: Provider,
        agent: Agent,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._config = config
        self._provider = provider
        self._agent = agent
        self._pending_model = provider.model

    def compose(self) -> ComposeResult:
        with Vertical(id="settings-dialog"):
            yield Static("[bold $primary]Settings[/bold $primary]", id="settings-title")

            yield Static("[bold]API key[/bold]")
            yield Static(
                f"[dim]Current: {_mask(self._config.api_key)}. Leave empty to keep it.[/dim]",
                classes="settings-desc",
            )
            with Vertical(classes="settings-row"):
                yield Input(placeholder="sk-...", password=True, id="settings-api-key")

            yield Static("[bold]Model[/bold]")
            with Vertical(classes="settings-row"):
                yield Button(self._pending_model, id="settings-model-btn")

            yield Static("[bold]Max iterations[/bold]")
            yield Static(
                "[dim]Model turns allowed per prompt before the run stops.[/dim]",
                classes="settings-desc",
            )
            with Vertical(classes="settings-row"):
                yield Input(
                    value=str(self._agent.max_iterations),
                    type="integer",
                    id="settings-max-iterations",
                )

            yield Static("", id="settings-status")
            with Horizontal(id="settings-actions"):
                yield Button("Save", variant="success", id="btn-settings-save")
                yield Button("Close", variant="default", id="btn-settings-close")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        btn_id = event.button.id or ""
        if btn_id == "btn-settings-close":
            self.dismiss(False)
        elif btn_id == "btn-settings-save":
            self._save()
        elif btn_id == "settings-model-btn":
            self._fetch_models()

    def action_close(self) -> None:
        self.dismiss(False)

    def _set_status(self, message: str, *, error: bool = False) -> None:
        color = "red" if error else "green"
        self.query_one("#settings-status", Static).update(f"[{color}]{message}[/{color}]")

    @work(exclusive=True, name="list-models")
    async def _fetch_models(self) -> None:
        self._set_status("Fetching models…")
        try:
            models = await self._provider.list_models()
        except ProviderError as exc:
            logger.warning("Listing models failed: %s", exc)
            self._set_status(f"Could not list models: {exc}", error=True)
            return
        self._set_status(f"{len(models)} models available")

        def on_dismiss(model_id: str | None) -> None:
            if model_id:
                self._pending_model = model_id
                self.query_one("#settings-model-btn", Button).label = model_id

        self.app.push_screen(
            ModelSelectorScreen(models, current_model=self._pending_model),
            callback=on_dismiss,
        )

    def _save(self) -> None:
        api_key = self.query_one("#settings-api-key", Input).value.strip()
        raw_iterations = self.query_one("#settings-max-iterations", Input).value.strip()
        try:
            max_iterations = int(raw_iterations)
        except ValueError:
            self._set_status("Max iterations must be a whole number", error=True)
            return
        if max_iterations < 1:
            self._set_status("Max iterations must be at least 1", error=True)
            return

        if api_key:
            self._config.api_key = api_key
        self._config.model = self._pending_model
        self._config.max_iterations = max_iterations

        self._provider.set_api_key(self._config.api_key)
        self._provider.set_model(self._config.model)
        self._agent.max_iterations = max_iterations

        try:
            path = self._config.save()
        except OSError as exc:
            logger.warning("Saving settings failed: %s", exc)
            self._set_status(f"Applied, but saving failed: {exc}", error=True)
            return
        logger.info("Settings saved to %s (model=%s)", path, self._config.model)
        self.dismiss(True)
