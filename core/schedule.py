"""Weekly recording windows and the schedule matcher.

``match_windows`` is the only place that decides whether a window has just
opened.  It is a pure function of ``now`` and the source list so it can be
called from the coordinator tick and from tests alike.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Protocol, Tuple

from sdk.config import Source, Window

DEFAULT_TOLERANCE = timedelta(seconds=5)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Local wall-clock time; windows are expressed in local time."""

    def now(self) -> datetime:
        return datetime.now()


@dataclass(frozen=True)
class TriggerEvent:
    """A window that opened at ``window_start`` and closes at ``window_end``."""

    source: Source = field(compare=False)
    window_start: datetime
    window_end: datetime
    source_name: str = ""

    def __post_init__(self) -> None:
        if self.window_end <= self.window_start:
            raise ValueError(
                f"window end {self.window_end} is not after start {self.window_start}"
            )
        if not self.source_name:
            object.__setattr__(self, "source_name", self.source.name)

    @property
    def key(self) -> Tuple[str, datetime]:
        """Identity used to keep one capture per (source, window start)."""
        return (self.source_name, self.window_start)

    @property
    def duration(self) -> timedelta:
        return self.window_end - self.window_start

    def window(self) -> Optional[Window]:
        """Return the configured window this trigger still corresponds to."""
        for window in self.source.windows:
            if (
                window.day_of_week == self.window_start.weekday()
                and window.start == self.window_start.time()
                and window.end == self.window_end.time()
            ):
                return window
        return None


def trigger_for(source: Source, window: Window, day: datetime) -> TriggerEvent:
    """Build the trigger for ``window`` on the calendar date of ``day``."""
    date = day.date()
    return TriggerEvent(
        source=source,
        window_start=datetime.combine(date, window.start),
        window_end=datetime.combine(date, window.end),
    )


def match_windows(
    now: datetime,
    sources: Iterable[Source],
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> List[TriggerEvent]:
    """Return triggers for every window whose start lies in ``(now - tolerance, now]``.

    Overlapping windows are all returned, in source then window order.
    """
    matches: List[TriggerEvent] = []
    weekday = now.weekday()
    for source in sources:
        for window in source.windows:
            if window.day_of_week != weekday:
                continue
            opened = datetime.combine(now.date(), window.start)
            if opened <= now < opened + tolerance:
                matches.append(trigger_for(source, window, now))
    return matches


def next_opening(now: datetime, window: Window) -> datetime:
    """Next absolute start of ``window`` at or after ``now``."""
    days_ahead = (window.day_of_week - now.weekday()) % 7
    candidate = datetime.combine(now.date() + timedelta(days=days_ahead), window.start)
    if candidate < now:
        candidate += timedelta(days=7)
    return candidate


__all__ = [
    "Clock",
    "SystemClock",
    "TriggerEvent",
    "DEFAULT_TOLERANCE",
    "match_windows",
    "next_opening",
    "trigger_for",
]
