"""Structured event records written alongside the text log."""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

import time

import ulid
from pydantic import BaseModel, ConfigDict, Field


def now_ts_ms() -> int:
    """Return the current timestamp in milliseconds."""

    return int(time.time() * 1000)


def new_event_id() -> str:
    """Generate a ULID based identifier for events."""

    return str(ulid.new())


EventKind = Literal["meta", "trigger", "attempt", "outcome", "notify", "cancel"]


class Event(BaseModel):
    """Canonical event emitted by the coordinator and capture jobs."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=new_event_id)
    ts_ms: int = Field(default_factory=now_ts_ms)
    kind: EventKind
    source: Optional[str] = None
    job_id: Optional[str] = None
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


def event_dump(event: Event) -> Dict[str, Any]:
    """Return a JSON-serialisable ``dict`` for ``event``."""

    return event.model_dump(mode="json")


__all__ = ["Event", "EventKind", "event_dump", "now_ts_ms", "new_event_id"]
