"""Schedule checks and capture dispatch.

The :class:`Coordinator` owns a single background thread that ticks every
``tick_seconds`` (measured from the start of the previous check), asks
:func:`core.schedule.match_windows` which windows just opened and hands each
one to a :class:`RetrySupervisor` running on its own thread.  A tick never
waits for a recording, so schedule checks keep firing while any number of
captures are in flight.

A ``(source name, window start)`` key is held from dispatch until the job's
terminal outcome and until the trigger tolerance of that window has passed,
so the same opening is never recorded twice.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from config.paths import Paths
from core.schedule import Clock, SystemClock, TriggerEvent, match_windows
from core.timing.stopwatch import Stopwatch
from sdk.config import AppConfig, Source
from sdk.notifier import Notifier

from .capture_job import CaptureJob, Launcher, popen_capture
from .event_writer import EventLog
from .reporting import OutcomeReporter
from .retry import RetrySupervisor

TriggerKey = Tuple[str, datetime]
SupervisorFactory = Callable[[TriggerEvent], RetrySupervisor]


@dataclass
class _ActiveJob:
    trigger: TriggerEvent
    supervisor: RetrySupervisor
    thread: threading.Thread
    started: datetime


class Coordinator:
    """Tick, match and dispatch; never blocks on a recording."""

    def __init__(
        self,
        sources: Iterable[Source],
        supervisor_factory: SupervisorFactory,
        log: EventLog,
        *,
        clock: Optional[Clock] = None,
        tick_seconds: float = 5.0,
        tolerance_seconds: float = 5.0,
    ) -> None:
        self.sources: List[Source] = list(sources)
        self.supervisor_factory = supervisor_factory
        self.log = log
        self.clock = clock or SystemClock()
        self.tick_seconds = max(0.05, float(tick_seconds))
        self.tolerance = timedelta(seconds=tolerance_seconds)

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._active: Dict[TriggerKey, _ActiveJob] = {}
        self._fired: Dict[TriggerKey, datetime] = {}

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        paths: Paths,
        log: EventLog,
        notifier: Notifier,
        *,
        clock: Optional[Clock] = None,
        launcher: Launcher = popen_capture,
    ) -> "Coordinator":
        settings = cfg.recorder
        clock = clock or SystemClock()
        reporter = OutcomeReporter(log, notifier)

        def job_factory(trigger: TriggerEvent, attempt: int, not_before: Optional[datetime]) -> CaptureJob:
            return CaptureJob(
                trigger,
                paths,
                settings,
                log=log,
                attempt=attempt,
                not_before=not_before,
                launcher=launcher,
            )

        def supervisor_factory(trigger: TriggerEvent) -> RetrySupervisor:
            return RetrySupervisor(
                trigger,
                job_factory,
                reporter,
                log,
                attempts=settings.attempts,
                remaining_only=settings.retry_remaining_only,
                now=clock.now,
            )

        return cls(
            cfg.sources,
            supervisor_factory,
            log,
            clock=clock,
            tick_seconds=settings.tick_seconds,
            tolerance_seconds=settings.trigger_tolerance_seconds,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._thread and self._thread.is_alive():  # already running
            return
        self._stop_event.clear()
        self.log.record(
            "meta",
            f"Recorder started: {len(self.sources)} source(s), checking every {self.tick_seconds:g}s",
            sources=[s.name for s in self.sources],
        )
        self._thread = threading.Thread(target=self._run, name="coordinator", daemon=True)
        self._thread.start()

    def stop(self, cancel_jobs: bool = True, timeout: Optional[float] = 10.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.tick_seconds + 1.0)
            self._thread = None
        if cancel_jobs:
            for job in self._snapshot():
                job.supervisor.cancel()
        self.wait_idle(timeout)
        self.log.record("meta", "Recorder stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            watch = Stopwatch().start()
            try:
                self.check()
            except Exception as exc:  # keep ticking whatever a single check does
                self.log.record("meta", f"Schedule check failed: {exc}", error=repr(exc))
            self._stop_event.wait(watch.remaining(self.tick_seconds))

    # ------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------
    def check(self, now: Optional[datetime] = None) -> List[TriggerKey]:
        """Run one schedule check and dispatch every newly opened window."""
        now = now or self.clock.now()
        self._expire_fired(now)
        dispatched: List[TriggerKey] = []
        for trigger in match_windows(now, self.sources, self.tolerance):
            if self._dispatch(trigger):
                dispatched.append(trigger.key)
        return dispatched

    def _expire_fired(self, now: datetime) -> None:
        with self._lock:
            for key in [k for k, until in self._fired.items() if until <= now]:
                del self._fired[key]

    def _dispatch(self, trigger: TriggerEvent) -> bool:
        key = trigger.key
        with self._lock:
            held = self._active.get(key)
            if held is None and key not in self._fired:
                supervisor = self.supervisor_factory(trigger)
                thread = threading.Thread(
                    target=self._run_job,
                    args=(key, supervisor),
                    name=f"capture-{trigger.source_name}",
                    daemon=True,
                )
                self._active[key] = _ActiveJob(trigger, supervisor, thread, self.clock.now())
                self._fired[key] = trigger.window_start + self.tolerance
            elif held is None or held.trigger == trigger:
                return False
        if held is not None:
            # another window of the same source opening at the same instant
            self.log.record(
                "trigger",
                f"Window skipped: {trigger.source_name} "
                f"{trigger.window_start:%Y-%m-%d %H:%M}-{trigger.window_end:%H:%M}, "
                f"already recording until {held.trigger.window_end:%H:%M}",
                source=trigger.source_name,
                job_id=held.supervisor.job_id,
                window_start=trigger.window_start.isoformat(),
                window_end=trigger.window_end.isoformat(),
            )
            return False
        self.log.record(
            "trigger",
            f"Window opened: {trigger.source_name} "
            f"{trigger.window_start:%Y-%m-%d %H:%M}-{trigger.window_end:%H:%M}",
            source=trigger.source_name,
            job_id=supervisor.job_id,
            window_start=trigger.window_start.isoformat(),
            window_end=trigger.window_end.isoformat(),
        )
        thread.start()
        return True

    def _run_job(self, key: TriggerKey, supervisor: RetrySupervisor) -> None:
        try:
            supervisor.run()
        finally:
            with self._idle:
                self._active.pop(key, None)
                self._idle.notify_all()

    # ------------------------------------------------------------------
    # Requests from outside the tick
    # ------------------------------------------------------------------
    def stop_recording(self, source_name: str, window_start: Optional[datetime] = None) -> int:
        """Cancel in-flight captures of ``source_name``; returns how many."""
        targets = [
            job
            for job in self._snapshot()
            if job.trigger.source_name == source_name
            and (window_start is None or job.trigger.window_start == window_start)
        ]
        for job in targets:
            self.log.record(
                "cancel",
                f"Stop requested: {source_name}",
                source=source_name,
                job_id=job.supervisor.job_id,
                window_start=job.trigger.window_start.isoformat(),
            )
            job.supervisor.cancel()
        return len(targets)

    def active_jobs(self) -> List[Dict[str, Any]]:
        return [
            {
                "job_id": job.supervisor.job_id,
                "source": job.trigger.source_name,
                "window_start": job.trigger.window_start.isoformat(),
                "window_end": job.trigger.window_end.isoformat(),
                "attempt": job.supervisor.attempt,
                "started": job.started.isoformat(),
            }
            for job in self._snapshot()
        ]

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no capture is in flight; False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._active, timeout=timeout)

    def _snapshot(self) -> List[_ActiveJob]:
        with self._lock:
            return list(self._active.values())


__all__ = ["Coordinator", "SupervisorFactory", "TriggerKey"]
