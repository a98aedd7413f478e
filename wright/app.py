"""Wright — main application entry point."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from wright import __version__
from wright.engine.config import AppConfig
from wright.engine.errors import ConfigError, ProviderNotAvailableError, StoreError
from wright.engine.models import AgentMode


def _configure_logging(config: AppConfig) -> Path:
    """Send all logging to a rotating file; the terminal belongs to the TUI."""
    level = "DEBUG" if config.debug else config.log_level.upper()
    config.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = config.log_path

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return log_file


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="wright",
        description="Wright — terminal AI coding assistant",
    )
    parser.add_argument("--model", metavar="MODEL", help="Model to use for this run")
    parser.add_argument(
        "--mode", choices=[m.value for m in AgentMode], default=AgentMode.PLAN.value,
        help="Start in plan (read-only) or build mode (default: plan)",
    )
    parser.add_argument(
        "--continue", dest="resume_latest", action="store_true",
        help="Resume the most recently updated session",
    )
    parser.add_argument("--session", metavar="ID", help="Resume a session by id")
    parser.add_argument(
        "--list", action="store_true",
        help="List stored sessions and exit (no TUI)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"wright {__version__}")
    args = parser.parse_args()

    try:
        config = AppConfig.load()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    if args.model:
        config.model = args.model
    config.debug = args.debug

    log_file = _configure_logging(config)
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting wright %s cwd=%s model=%s mode=%s log=%s",
        __version__, config.work_dir, config.model, args.mode, log_file,
    )

    from wright.engine.agent import Agent
    from wright.engine.permission import PermissionGate
    from wright.engine.providers import build_provider
    from wright.engine.tools import default_registry
    from wright.shared.services.sessions import SessionService
    from wright.shared.services.store import MessageStore

    try:
        store = MessageStore(config.db_path)
    except StoreError as exc:
        print(f"Error: cannot open {config.db_path}: {exc}", file=sys.stderr)
        sys.exit(1)
    sessions = SessionService(store)

    if args.list:
        listed = sessions.list_sessions()
        if not listed:
            print("No stored sessions.")
        for session in listed:
            print(f"  {session.id}  {session.updated_at:%Y-%m-%d %H:%M}  {session.title}")
        sys.exit(0)

    try:
        if args.session:
            sessions.switch(args.session)
        elif args.resume_latest and sessions.latest() is None:
            print("No previous session to continue; starting a new one.", file=sys.stderr)
    except StoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        provider = build_provider(config)
    except ProviderNotAvailableError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    if not config.api_key:
        logger.warning("No API key configured; set OPENAI_API_KEY or use settings (Ctrl+K)")

    agent = Agent(
        provider=provider,
        registry=default_registry(config.work_dir, config.shell),
        gate=PermissionGate(),
        work_dir=config.work_dir,
        mode=AgentMode(args.mode),
        max_tokens=config.max_tokens,
        max_iterations=config.max_iterations,
    )

    from wright.tui.app import WrightApp

    app = WrightApp(config, sessions, agent)
    app.run()
    logger.info("wright exited")


if __name__ == "__main__":
    main()
