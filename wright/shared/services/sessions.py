"""Session service — tracks the active session on top of MessageStore."""
from __future__ import annotations

import logging

from wright.engine.errors import StoreError
from wright.shared.models.message import Message
from wright.shared.models.session import DEFAULT_SESSION_TITLE, Session
from wright.shared.services.store import MessageStore

logger = logging.getLogger(__name__)

_TITLE_LIMIT = 50


def title_from_prompt(prompt: str) -> str:
    """Derive a short session title from the first prompt."""
    line = " ".join(prompt.strip().split())
    if not line:
        return DEFAULT_SESSION_TITLE
    if len(line) > _TITLE_LIMIT:
        line = line[:_TITLE_LIMIT - 3].rstrip() + "..."
    return line


class SessionService:
    """Holds the current session and forwards message I/O to the store."""

    def __init__(self, store: MessageStore) -> None:
        self.store = store
        self._current: Session | None = None

    def create(self, title: str = DEFAULT_SESSION_TITLE) -> Session:
        self._current = self.store.create_session(title)
        return self._current

    def switch(self, session_id: str) -> Session:
        self._current = self.store.get_session(session_id)
        logger.info("Switched to session %s", session_id)
        return self._current

    def latest(self) -> Session | None:
        """Switch to the most recently updated session, if any."""
        sessions = self.store.list_sessions()
        if not sessions:
            return None
        self._current = sessions[0]
        return self._current

    def current(self) -> Session:
        """The active session, creating one on first use."""
        if self._current is None:
            return self.create()
        return self._current

    def list_sessions(self) -> list[Session]:
        return self.store.list_sessions()

    def delete(self, session_id: str) -> None:
        self.store.delete_session(session_id)
        if self._current is not None and self._current.id == session_id:
            self._current = None

    def add_message(self, message: Message) -> None:
        session = self.current()
        if not message.session_id:
            message.session_id = session.id
        self.store.add_message(message)

    def get_messages(self) -> list[Message]:
        return self.store.get_messages(self.current().id)

    def message_count(self) -> int:
        if self._current is None:
            return 0
        return self.store.message_count(self._current.id)

    def token_total(self) -> int:
        if self._current is None:
            return 0
        return self.store.session_token_total(self._current.id)

    def update_title(self, title: str) -> None:
        session = self.current()
        self.store.update_session_title(session.id, title)
        session.title = title

    def title_if_default(self, prompt: str) -> None:
        """Name an untitled session after its first prompt."""
        session = self.current()
        if session.title != DEFAULT_SESSION_TITLE:
            return
        try:
            self.update_title(title_from_prompt(prompt))
        except StoreError:
            logger.warning("Could not title session %s", session.id, exc_info=True)
