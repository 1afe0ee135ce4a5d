"""One capture attempt for a triggered window.

:class:`CaptureJob` spawns ``ffmpeg`` in stream-copy mode for the length of
the window, drains its stderr on a helper thread and waits for the process
for at most ``duration + grace`` seconds.  The attempt ends in exactly one
outcome value from :mod:`core.outcomes`; nothing is raised to the caller.

The process is launched through an injectable ``launcher`` so tests can run
short-lived Python children in place of ffmpeg.
"""

from __future__ import annotations

import contextlib
import subprocess
import threading
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import IO, Callable, Deque, List, Optional

from config.paths import Paths
from core.outcomes import (
    CaptureOutcome,
    Cancelled,
    NoMatchingWindow,
    ProcessFailure,
    Success,
    Timeout,
)
from core.schedule import TriggerEvent
from core.timing.stopwatch import Stopwatch
from sdk.config import RecorderSettings

from .event_writer import EventLog, ensure_dir

Launcher = Callable[[List[str]], "subprocess.Popen[str]"]

# exit code reported when the capture binary cannot be started at all
LAUNCH_FAILED_EXIT = 127


def popen_capture(cmd: List[str]) -> "subprocess.Popen[str]":
    """Default launcher: no stdin, discard stdout, keep stderr as text."""

    return subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
    )


def ffmpeg_command(ffmpeg_bin: str, url: str, seconds: int, output: Path) -> List[str]:
    """Stream-copy ``url`` for ``seconds`` into ``output``.

    ``-y`` lets a retry overwrite the partial file of a failed attempt, the
    output name being fixed per window.
    """

    return [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i", url,
        "-c", "copy",
        "-t", str(seconds),
        str(output),
    ]


class CaptureJob:
    """Record one triggered window once.

    Parameters
    ----------
    trigger:
        The opened window to record.
    paths:
        Resolves the deterministic output file.
    settings:
        Grace period, ffmpeg binary, stderr bound and cancel grace.
    log:
        Shared log sink.
    job_id:
        Identifier shared by all attempts for the same trigger.
    attempt:
        1-based attempt number, used in log lines only.
    not_before:
        When set, the recording length is measured from this instant to
        the window end instead of covering the full window.
    """

    def __init__(
        self,
        trigger: TriggerEvent,
        paths: Paths,
        settings: RecorderSettings,
        *,
        log: EventLog,
        job_id: str = "",
        attempt: int = 1,
        not_before: Optional[datetime] = None,
        launcher: Launcher = popen_capture,
    ) -> None:
        self.trigger = trigger
        self.paths = paths
        self.settings = settings
        self.log = log
        self.job_id = job_id
        self.attempt = attempt
        self.not_before = not_before
        self._launcher = launcher

        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._proc: Optional["subprocess.Popen[str]"] = None
        self._stderr: Deque[str] = deque(maxlen=settings.stderr_tail_lines)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------
    @property
    def duration(self) -> timedelta:
        start = self.trigger.window_start
        if self.not_before is not None and self.not_before > start:
            start = self.not_before
        return max(self.trigger.window_end - start, timedelta(0))

    @property
    def output_path(self) -> Path:
        return self.paths.recording_path(self.trigger.source_name, self.trigger.window_start)

    @property
    def seconds(self) -> int:
        """Whole seconds passed to ``-t``."""
        return int(self.duration.total_seconds())

    def command(self) -> List[str]:
        return ffmpeg_command(
            self.settings.ffmpeg_bin,
            self.trigger.source.capture_url,
            self.seconds,
            self.output_path,
        )

    @property
    def stderr_text(self) -> str:
        return "\n".join(self._stderr)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def run(self) -> CaptureOutcome:
        name = self.trigger.source_name
        if self._cancel.is_set():
            return Cancelled()
        if self.trigger.window() is None:
            return NoMatchingWindow()

        try:
            ensure_dir(self.output_path.parent)
        except OSError as exc:
            self._record_attempt(
                f"Could not prepare recording: {name}. {exc}",
                "launch_failed",
                output=str(self.output_path),
            )
            return ProcessFailure(LAUNCH_FAILED_EXIT, str(exc))
        cmd = self.command()
        with self._lock:
            if self._cancel.is_set():
                return Cancelled()
            try:
                proc = self._launcher(cmd)
            # ValueError covers arguments Popen refuses, e.g. an embedded NUL
            except (OSError, ValueError) as exc:
                self._record_attempt(f"Could not start recording: {name}. {exc}", "launch_failed")
                return ProcessFailure(LAUNCH_FAILED_EXIT, str(exc))
            self._proc = proc

        reader = threading.Thread(
            target=self._drain, args=(proc.stderr,), name=f"stderr-{name}", daemon=True
        )
        reader.start()
        self._record_attempt(
            f"Started recording: {name}",
            "started",
            output=str(self.output_path),
            duration_s=self.duration.total_seconds(),
        )

        watch = Stopwatch().start()
        deadline = self.duration.total_seconds() + self.settings.grace_seconds
        try:
            code = proc.wait(timeout=deadline)
        except subprocess.TimeoutExpired:
            self._kill(proc)
            reader.join(timeout=1.0)
            if self._cancel.is_set():
                return self._cancelled(watch)
            self._record_attempt(f"Recording timeout: {name}", "timeout", elapsed_s=watch.stop())
            return Timeout()
        reader.join(timeout=1.0)

        if self._cancel.is_set():
            return self._cancelled(watch)
        if code == 0:
            self._record_attempt(f"Finished recording: {name}", "finished", elapsed_s=watch.stop())
            return Success()
        stderr = self.stderr_text
        last_line = self._stderr[-1] if self._stderr else ""
        self._record_attempt(
            f"Error during recording: {name}. Exit code: {code}. Error: {last_line}",
            "failed",
            exit_code=code,
            stderr=stderr,
            elapsed_s=watch.stop(),
        )
        return ProcessFailure(code, stderr)

    def cancel(self) -> None:
        """Stop the attempt; a running process is terminated, then killed."""
        with self._lock:
            self._cancel.set()
            proc = self._proc
        if proc is None or proc.poll() is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        timer = threading.Timer(self.settings.cancel_grace_seconds, self._kill, args=(proc,))
        timer.daemon = True
        timer.start()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _drain(self, stream: Optional[IO[str]]) -> None:
        if stream is None:
            return
        with contextlib.closing(stream):
            for line in stream:
                self._stderr.append(line.rstrip("\n"))

    @staticmethod
    def _kill(proc: "subprocess.Popen[str]") -> None:
        if proc.poll() is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        proc.wait()

    def _cancelled(self, watch: Stopwatch) -> CaptureOutcome:
        self._record_attempt(
            f"Stopped recording: {self.trigger.source_name}", "cancelled", elapsed_s=watch.stop()
        )
        return Cancelled()

    def _record_attempt(self, message: str, phase: str, **data) -> None:
        self.log.record(
            "attempt",
            message,
            source=self.trigger.source_name,
            job_id=self.job_id,
            phase=phase,
            attempt=self.attempt,
            window_start=self.trigger.window_start.isoformat(),
            **data,
        )


__all__ = ["CaptureJob", "Launcher", "ffmpeg_command", "popen_capture", "LAUNCH_FAILED_EXIT"]
