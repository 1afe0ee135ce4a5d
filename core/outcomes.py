"""Outcome values produced by capture jobs and the retry supervisor.

A capture attempt never raises to its caller.  Every way an attempt can end
is represented by one of the small frozen dataclasses below, and the retry
supervisor folds a sequence of them into a single :class:`RetryResult`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Success:
    kind = "success"
    retryable = False


@dataclass(frozen=True)
class ProcessFailure:
    exit_code: int
    stderr: str = ""

    kind = "process_failure"
    retryable = True


@dataclass(frozen=True)
class Timeout:
    kind = "timeout"
    retryable = True


@dataclass(frozen=True)
class NoMatchingWindow:
    kind = "no_matching_window"
    retryable = False


@dataclass(frozen=True)
class Cancelled:
    kind = "cancelled"
    retryable = False


CaptureOutcome = Union[Success, ProcessFailure, Timeout, NoMatchingWindow, Cancelled]

# Terminal statuses reported once per trigger
STATUS_SUCCESS = "success"
STATUS_RETRY_EXHAUSTED = "retry_exhausted"
STATUS_NO_MATCHING_WINDOW = "no_matching_window"
STATUS_CANCELLED = "cancelled"


@dataclass(frozen=True)
class RetryResult:
    """Terminal outcome of one trigger plus the number of attempts used."""

    outcome: CaptureOutcome
    attempts: int

    @property
    def status(self) -> str:
        if isinstance(self.outcome, Success):
            return STATUS_SUCCESS
        if isinstance(self.outcome, NoMatchingWindow):
            return STATUS_NO_MATCHING_WINDOW
        if isinstance(self.outcome, Cancelled):
            return STATUS_CANCELLED
        return STATUS_RETRY_EXHAUSTED

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS


__all__ = [
    "CaptureOutcome",
    "Success",
    "ProcessFailure",
    "Timeout",
    "NoMatchingWindow",
    "Cancelled",
    "RetryResult",
    "STATUS_SUCCESS",
    "STATUS_RETRY_EXHAUSTED",
    "STATUS_NO_MATCHING_WINDOW",
    "STATUS_CANCELLED",
]
