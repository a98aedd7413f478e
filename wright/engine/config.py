"""Application configuration.

Settings are resolved in layers: built-in defaults, then the first
YAML config file found, then WRIGHT_* environment variables. The API
key falls back to OPENAI_API_KEY when no file provides one.

Example ``~/.config/wright/config.yaml``:
    provider: openai
    model: gpt-4o
    max_tokens: 4096
    max_iterations: 25
    shell: /bin/bash
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from wright.engine.errors import ConfigError

logger = logging.getLogger(__name__)

APP_NAME = "wright"
CONFIG_FILENAME = "config.yaml"
PROJECT_CONFIG_FILENAME = ".wright.yaml"

# Keys written back by save(). work_dir and debug are per-process only.
_PERSISTED_KEYS = (
    "provider",
    "model",
    "api_key",
    "base_url",
    "max_tokens",
    "max_iterations",
    "shell",
    "log_level",
    "data_dir",
)


def _default_shell() -> str:
    if sys.platform.startswith("win"):
        return "cmd.exe"
    return "/bin/bash"


def user_config_dir() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / APP_NAME


def default_data_dir() -> Path:
    explicit = os.getenv("WRIGHT_DATA_DIR")
    if explicit:
        return Path(explicit).expanduser()
    xdg = os.getenv("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / APP_NAME
    return Path.home() / ".local" / "share" / APP_NAME


def candidate_config_paths(cwd: Path | None = None) -> list[Path]:
    """Config file search order; the first existing file wins."""
    cwd = cwd or Path.cwd()
    return [
        cwd / PROJECT_CONFIG_FILENAME,
        user_config_dir() / CONFIG_FILENAME,
        Path.home() / PROJECT_CONFIG_FILENAME,
    ]


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(str(path), str(exc)) from exc
    if not isinstance(raw, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return raw


@dataclass
class AppConfig:
    """Resolved application configuration."""

    provider: str = "openai"
    model: str = "gpt-4o"
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    max_tokens: int = 4096
    # Cap on model turns per prompt before the run fails.
    max_iterations: int = 25
    shell: str = field(default_factory=_default_shell)
    data_dir: Path = field(default_factory=default_data_dir)
    log_level: str = "INFO"
    debug: bool = False
    work_dir: Path = field(default_factory=Path.cwd)
    # File the settings were loaded from, if any.
    source_path: Path | None = field(default=None, repr=False)

    @property
    def db_path(self) -> Path:
        return self.data_dir / "wright.db"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def log_path(self) -> Path:
        return self.log_dir / "wright.log"

    def validate(self) -> None:
        if self.max_tokens < 0:
            raise ConfigError("<config>", "max_tokens must be >= 0")
        if self.max_iterations < 1:
            raise ConfigError("<config>", "max_iterations must be >= 1")
        if not self.model:
            raise ConfigError("<config>", "model must not be empty")

    def apply(self, values: dict[str, Any], source: str = "<config>") -> None:
        """Merge a mapping of settings into this config."""
        for key, value in values.items():
            if key not in _PERSISTED_KEYS:
                logger.warning("Ignoring unknown config key %r in %s", key, source)
                continue
            if value is None:
                continue
            try:
                if key in ("max_tokens", "max_iterations"):
                    value = int(value)
                elif key == "data_dir":
                    value = Path(str(value)).expanduser()
                else:
                    value = str(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(source, f"{key}: {exc}") from exc
            setattr(self, key, value)

    @classmethod
    def load(cls, cwd: Path | None = None) -> AppConfig:
        """Load defaults, the first config file found, then env overrides."""
        config = cls(work_dir=(cwd or Path.cwd()).resolve())
        for path in candidate_config_paths(cwd):
            if path.is_file():
                config.apply(_read_yaml(path), str(path))
                config.source_path = path
                logger.info("Loaded config from %s", path)
                break
        else:
            logger.debug("No config file found, using defaults")

        config.apply_env()
        if not config.api_key:
            config.api_key = os.getenv("OPENAI_API_KEY", "")
        config.validate()
        logger.info(
            "AppConfig.load: provider=%s model=%s max_iterations=%d data_dir=%s",
            config.provider, config.model, config.max_iterations, config.data_dir,
        )
        return config

    def apply_env(self) -> None:
        """Apply WRIGHT_* environment variable overrides."""
        overrides = {
            "provider": os.getenv("WRIGHT_PROVIDER"),
            "model": os.getenv("WRIGHT_MODEL"),
            "shell": os.getenv("WRIGHT_SHELL"),
            "base_url": os.getenv("WRIGHT_BASE_URL"),
            "max_iterations": os.getenv("WRIGHT_MAX_ITERATIONS"),
            "log_level": os.getenv("WRIGHT_LOG_LEVEL"),
            "data_dir": os.getenv("WRIGHT_DATA_DIR"),
        }
        set_vars = {k: v for k, v in overrides.items() if v}
        if set_vars:
            logger.info(
                "Env overrides: %s", ", ".join(sorted(set_vars)),
            )
        self.apply(set_vars, "<env>")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for key in _PERSISTED_KEYS:
            value = getattr(self, key)
            data[key] = str(value) if isinstance(value, Path) else value
        return data

    def save(self, path: Path | None = None) -> Path:
        """Write persisted settings to the user config file (mode 0600)."""
        target = path or user_config_dir() / CONFIG_FILENAME
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = yaml.safe_dump(self.to_dict(), sort_keys=False)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        try:
            os.chmod(target, 0o600)
        except OSError:
            logger.debug("Could not chmod %s", target, exc_info=True)
        logger.info("Saved config to %s", target)
        return target
