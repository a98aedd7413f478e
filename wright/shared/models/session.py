"""Session model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from wright.shared.models.message import generate_id

DEFAULT_SESSION_TITLE = "New Session"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    id: str = field(default_factory=lambda: generate_id("ses"))
    title: str = DEFAULT_SESSION_TITLE
    summary: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
