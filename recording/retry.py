"""Bounded retry around :class:`CaptureJob`."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from core.outcomes import Cancelled, CaptureOutcome, ProcessFailure, RetryResult
from core.schedule import TriggerEvent
from sdk.ids import new_job_id

from .capture_job import CaptureJob
from .event_writer import EventLog
from .reporting import OutcomeReporter

# (trigger, attempt number, not_before) -> job
JobFactory = Callable[[TriggerEvent, int, Optional[datetime]], CaptureJob]

# exit code reported when an attempt raised instead of returning an outcome
ATTEMPT_ERROR_EXIT = -1

MIN_RETRY_LENGTH = timedelta(seconds=1)


class RetrySupervisor:
    """Run capture attempts for one trigger until success or exhaustion.

    Process failures and timeouts are retried immediately, up to
    ``attempts`` runs in total.  ``NoMatchingWindow`` and ``Cancelled`` end
    the loop at once.  Exactly one terminal report is made per :meth:`run`.

    By default every retry records the full window length again.  With
    ``remaining_only`` a retry only covers what is left until the window
    end, and the loop stops once nothing is left.
    """

    def __init__(
        self,
        trigger: TriggerEvent,
        job_factory: JobFactory,
        reporter: OutcomeReporter,
        log: EventLog,
        *,
        attempts: int = 3,
        remaining_only: bool = False,
        now: Callable[[], datetime] = datetime.now,
        job_id: Optional[str] = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.trigger = trigger
        self.job_factory = job_factory
        self.reporter = reporter
        self.log = log
        self.attempts = attempts
        self.remaining_only = remaining_only
        self._now = now
        self.job_id = job_id or new_job_id()

        self._lock = threading.Lock()
        self._cancelled = False
        self._current: Optional[CaptureJob] = None
        self.attempt = 0
        self.result: Optional[RetryResult] = None

    def run(self) -> RetryResult:
        name = self.trigger.source_name
        outcome: CaptureOutcome = Cancelled()
        used = 0
        attempts_left = self.attempts
        while attempts_left > 0:
            not_before = self._now() if self.remaining_only and used else None
            # -t takes whole seconds, less than one left means nothing to record
            if not_before is not None and self.trigger.window_end - not_before < MIN_RETRY_LENGTH:
                self.log.record(
                    "attempt",
                    f"Window already closed, not retrying: {name}",
                    source=name,
                    job_id=self.job_id,
                )
                break
            with self._lock:
                if self._cancelled:
                    outcome = Cancelled()
                    break
                self.attempt = used + 1
            outcome = self._run_attempt(used + 1, not_before)
            used += 1
            attempts_left -= 1
            if not outcome.retryable:
                break
            if attempts_left > 0 and not self._cancelled:
                self.log.record(
                    "attempt",
                    f"Retrying recording: {name}. Attempts left: {attempts_left}",
                    source=name,
                    job_id=self.job_id,
                    attempts_left=attempts_left,
                    last_outcome=outcome.kind,
                )
        if self._cancelled and outcome.retryable:
            outcome = Cancelled()

        self.result = RetryResult(outcome=outcome, attempts=used)
        self.reporter.report(self.trigger, self.result, job_id=self.job_id)
        return self.result

    def _run_attempt(self, number: int, not_before: Optional[datetime]) -> CaptureOutcome:
        name = self.trigger.source_name
        try:
            with self._lock:
                if self._cancelled:
                    return Cancelled()
                job = self.job_factory(self.trigger, number, not_before)
                job.job_id = self.job_id
                self._current = job
            return job.run()
        except Exception as exc:  # every attempt ends in an outcome
            self.log.record(
                "attempt",
                f"Error during recording: {name}. {exc}",
                source=name,
                job_id=self.job_id,
                phase="crashed",
                attempt=number,
                error=repr(exc),
            )
            return ProcessFailure(ATTEMPT_ERROR_EXIT, repr(exc))
        finally:
            with self._lock:
                self._current = None

    def cancel(self) -> None:
        """Cancel the running attempt and prevent any further retry."""
        with self._lock:
            self._cancelled = True
            job = self._current
        if job is not None:
            job.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


__all__ = ["RetrySupervisor", "JobFactory", "ATTEMPT_ERROR_EXIT"]
