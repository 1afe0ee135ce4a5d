from __future__ import annotations
import json
from datetime import datetime
from pathlib import Path
from typing import Any, IO, Optional
from threading import Lock

import typer

from core.events import Event, EventKind, event_dump

TEXT_TS = "%Y-%m-%d %H:%M:%S"


def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


class JsonlWriter:
    """
    Minimal, robust JSONL writer with periodic flush.
    Not thread-safe across processes, but thread-safe within a process.
    """
    def __init__(self, out_path: Path, flush_every: int = 1):
        ensure_dir(out_path.parent)
        self._f: IO[str] = out_path.open("a", encoding="utf-8")
        self._n = 0
        self._flush_every = max(1, flush_every)
        self._lock = Lock()

    def write(self, obj) -> None:
        line = json.dumps(obj, ensure_ascii=False, default=str)
        with self._lock:
            if self._f.closed:
                return
            self._f.write(line + "\n")
            self._n += 1
            if self._n % self._flush_every == 0:
                self._f.flush()

    def close(self):
        with self._lock:
            if self._f.closed:
                return
            try:
                self._f.flush()
            finally:
                self._f.close()


class TextLog:
    """
    Append-only text log: one ``[YYYY-MM-DD HH:MM:SS] message`` line per call.
    Every line is flushed so a crash never loses an already reported event.
    """
    def __init__(self, out_path: Optional[Path] = None, echo: bool = True):
        self._f: Optional[IO[str]] = None
        if out_path is not None:
            ensure_dir(out_path.parent)
            self._f = out_path.open("a", encoding="utf-8")
        self._echo = echo
        self._lock = Lock()

    def write(self, message: str, when: Optional[datetime] = None) -> str:
        line = f"[{(when or datetime.now()).strftime(TEXT_TS)}] {message}"
        with self._lock:
            if self._f is not None and not self._f.closed:
                self._f.write(line + "\n")
                self._f.flush()
            if self._echo:
                typer.echo(line)
        return line

    def close(self) -> None:
        with self._lock:
            if self._f is not None and not self._f.closed:
                self._f.close()


class EventLog:
    """
    The log sink shared by the coordinator, supervisors and capture jobs.

    ``record`` writes a human readable line to the text log and, when an
    events writer is attached, the same fact as a structured :class:`Event`.
    Safe to call from any thread.
    """
    def __init__(self, text: TextLog, events: Optional[JsonlWriter] = None):
        self.text = text
        self.events = events

    @classmethod
    def open(cls, log_file: Path, events_file: Optional[Path] = None, echo: bool = True) -> "EventLog":
        events = JsonlWriter(events_file) if events_file is not None else None
        return cls(TextLog(log_file, echo=echo), events)

    def record(
        self,
        kind: EventKind,
        message: str,
        *,
        source: Optional[str] = None,
        job_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        self.text.write(message)
        if self.events is not None:
            ev = Event(kind=kind, source=source, job_id=job_id, message=message, data=data)
            self.events.write(event_dump(ev))

    def close(self) -> None:
        if self.events is not None:
            self.events.close()
        self.text.close()
