# tests/unit/test_retry.py
import sys
import threading
from datetime import datetime, time

import pytest

from conftest import MONDAY, make_source, read_lines
from core.outcomes import (
    Cancelled,
    NoMatchingWindow,
    ProcessFailure,
    Success,
    Timeout,
)
from core.schedule import trigger_for
from plugins.notifiers.null.impl import NullNotifier
from recording.capture_job import LAUNCH_FAILED_EXIT, CaptureJob, popen_capture
from recording.reporting import OutcomeReporter
from recording.retry import ATTEMPT_ERROR_EXIT, RetrySupervisor
from sdk.config import Window


class ScriptedJob:
    def __init__(self, outcome):
        self.outcome = outcome
        self.job_id = ""
        self.cancelled = False

    def run(self):
        return self.outcome

    def cancel(self):
        self.cancelled = True


class ScriptedFactory:
    """Hands out jobs that return the given outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, trigger, attempt, not_before):
        self.calls.append((attempt, not_before))
        return ScriptedJob(self.outcomes.pop(0))


@pytest.fixture
def radio_trigger():
    radio = make_source()
    return trigger_for(radio, radio.windows[0], MONDAY)


@pytest.fixture
def notifier():
    return NullNotifier()


def supervise(trigger, factory, notifier, log, **kw):
    return RetrySupervisor(trigger, factory, OutcomeReporter(log, notifier), log, **kw)


def test_first_success_stops(radio_trigger, notifier, event_log):
    factory = ScriptedFactory(Success())
    result = supervise(radio_trigger, factory, notifier, event_log).run()

    assert result.ok
    assert result.attempts == 1
    assert len(factory.calls) == 1
    assert notifier.sent == ["Recording completed: Radio"]


def test_failure_then_success_reports_once(radio_trigger, notifier, event_log, paths):
    factory = ScriptedFactory(ProcessFailure(1, "boom"), Success())
    result = supervise(radio_trigger, factory, notifier, event_log).run()

    assert result.status == "success"
    assert result.attempts == 2
    assert notifier.sent == ["Recording completed: Radio"]
    assert any("Retrying recording: Radio. Attempts left: 2" in l for l in read_lines(paths.log_file))


def test_exhaustion_after_three_timeouts(radio_trigger, notifier, event_log):
    factory = ScriptedFactory(Timeout(), Timeout(), Timeout())
    result = supervise(radio_trigger, factory, notifier, event_log).run()

    assert result.status == "retry_exhausted"
    assert result.attempts == 3
    assert result.outcome == Timeout()
    assert notifier.sent == ["Recording failed after all retry attempts: Radio"]


@pytest.mark.parametrize("attempts", [1, 2, 5])
def test_never_more_than_configured_attempts(radio_trigger, notifier, event_log, attempts):
    factory = ScriptedFactory(*[ProcessFailure(1)] * 10)
    result = supervise(radio_trigger, factory, notifier, event_log, attempts=attempts).run()

    assert result.attempts == attempts
    assert len(factory.calls) == attempts
    assert [a for a, _ in factory.calls] == list(range(1, attempts + 1))
    assert len(notifier.sent) == 1


def test_no_matching_window_is_not_retried(radio_trigger, notifier, event_log):
    factory = ScriptedFactory(NoMatchingWindow(), Success())
    result = supervise(radio_trigger, factory, notifier, event_log).run()

    assert result.status == "no_matching_window"
    assert result.attempts == 1
    assert notifier.sent == ["Error: No matching schedule found for Radio at 2024-01-01 20:00:00"]


def test_retries_rerun_full_window_by_default(radio_trigger, notifier, event_log):
    factory = ScriptedFactory(Timeout(), Success())
    supervise(radio_trigger, factory, notifier, event_log).run()

    assert [nb for _, nb in factory.calls] == [None, None]


def test_remaining_only_retries_target_window_end(radio_trigger, notifier, event_log):
    clock = iter([datetime(2024, 1, 1, 20, 40), datetime(2024, 1, 1, 20, 50)])
    factory = ScriptedFactory(ProcessFailure(1), ProcessFailure(1), Success())
    result = supervise(
        radio_trigger, factory, notifier, event_log,
        remaining_only=True, now=lambda: next(clock),
    ).run()

    assert result.ok
    assert [nb for _, nb in factory.calls] == [
        None,
        datetime(2024, 1, 1, 20, 40),
        datetime(2024, 1, 1, 20, 50),
    ]


def test_remaining_only_stops_when_window_closed(radio_trigger, notifier, event_log):
    factory = ScriptedFactory(Timeout(), Success())
    result = supervise(
        radio_trigger, factory, notifier, event_log,
        remaining_only=True, now=lambda: datetime(2024, 1, 1, 21, 0, 5),
    ).run()

    assert result.status == "retry_exhausted"
    assert result.attempts == 1
    assert notifier.sent == ["Recording failed after all retry attempts: Radio"]


def test_attempts_must_be_positive(radio_trigger, notifier, event_log):
    with pytest.raises(ValueError):
        supervise(radio_trigger, ScriptedFactory(), notifier, event_log, attempts=0)


def test_cancel_stops_running_attempt_and_retries(radio_trigger, notifier, event_log):
    started = threading.Event()

    class BlockingJob(ScriptedJob):
        def __init__(self):
            super().__init__(None)
            self._release = threading.Event()

        def run(self):
            started.set()
            self._release.wait(10)
            return Cancelled() if self.cancelled else Timeout()

        def cancel(self):
            self.cancelled = True
            self._release.set()

    calls = []

    def factory(trigger, attempt, not_before):
        calls.append(attempt)
        return BlockingJob()

    sup = supervise(radio_trigger, factory, notifier, event_log)
    worker = threading.Thread(target=sup.run)
    worker.start()
    assert started.wait(5)
    sup.cancel()
    worker.join(10)

    assert sup.result.status == "cancelled"
    assert calls == [1]
    assert notifier.sent == ["Recording stopped: Radio"]


def test_real_processes_fail_then_succeed(paths, fast_settings, event_log, notifier, tmp_path):
    """Scenario: exit code 1 on the first attempt, 0 on the second."""
    marker = tmp_path / "attempted"
    script = (
        "import pathlib, sys\n"
        f"m = pathlib.Path({str(marker)!r})\n"
        "if m.exists(): sys.exit(0)\n"
        "m.write_text('1'); sys.exit(1)\n"
    )
    start = time(20, 0, 0)
    end = time(20, 0, 1)
    source = make_source(windows=[Window(day_of_week=0, start=start, end=end)])
    trig = trigger_for(source, source.windows[0], MONDAY)

    def job_factory(trigger, attempt, not_before):
        return CaptureJob(
            trigger, paths, fast_settings, log=event_log, attempt=attempt,
            launcher=lambda cmd: popen_capture([sys.executable, "-c", script]),
        )

    result = supervise(trig, job_factory, notifier, event_log).run()

    assert result.ok and result.attempts == 2
    assert notifier.sent == ["Recording completed: Radio"]


def test_real_hung_processes_exhaust_retries(paths, event_log, notifier):
    """Scenario: the process never exits; three killed attempts then one failure notice."""
    from sdk.config import RecorderSettings

    settings = RecorderSettings(grace_seconds=0.1, cancel_grace_seconds=0.5)
    source = make_source(windows=[Window(day_of_week=0, start=time(20, 0, 0), end=time(20, 0, 1))])
    trig = trigger_for(source, source.windows[0], MONDAY)

    def job_factory(trigger, attempt, not_before):
        return CaptureJob(
            trigger, paths, settings, log=event_log, attempt=attempt,
            launcher=lambda cmd: popen_capture([sys.executable, "-c", "import time; time.sleep(30)"]),
        )

    result = supervise(trig, job_factory, notifier, event_log).run()

    assert result.status == "retry_exhausted"
    assert result.attempts == 3
    assert result.outcome == Timeout()
    assert notifier.sent == ["Recording failed after all retry attempts: Radio"]
    timeouts = [l for l in read_lines(paths.log_file) if "Recording timeout: Radio" in l]
    assert len(timeouts) == 3


def test_raising_job_still_reports_once(radio_trigger, notifier, event_log, paths):
    class BrokenJob(ScriptedJob):
        def run(self):
            raise RuntimeError("disk gone")

    result = supervise(radio_trigger, lambda t, a, nb: BrokenJob(None), notifier, event_log).run()

    assert result.status == "retry_exhausted"
    assert result.attempts == 3
    assert result.outcome.exit_code == ATTEMPT_ERROR_EXIT
    assert notifier.sent == ["Recording failed after all retry attempts: Radio"]
    lines = read_lines(paths.log_file)
    assert sum("Error during recording: Radio. disk gone" in l for l in lines) == 3
    assert sum("Recording failed after all retry attempts: Radio (attempts: 3)" in l for l in lines) == 1


def test_raising_job_factory_still_reports_once(radio_trigger, notifier, event_log):
    def factory(trigger, attempt, not_before):
        raise KeyError("settings")

    result = supervise(radio_trigger, factory, notifier, event_log, attempts=2).run()

    assert result.status == "retry_exhausted"
    assert result.attempts == 2
    assert notifier.sent == ["Recording failed after all retry attempts: Radio"]


def test_real_capture_into_blocked_folder_reports_failure(radio_trigger, paths, fast_settings,
                                                          event_log, notifier):
    paths.source_dir("Radio").write_text("not a folder")
    launched = []

    def job_factory(trigger, attempt, not_before):
        return CaptureJob(trigger, paths, fast_settings, log=event_log, attempt=attempt,
                          launcher=launched.append)

    result = supervise(radio_trigger, job_factory, notifier, event_log).run()

    assert result.status == "retry_exhausted"
    assert result.outcome.exit_code == LAUNCH_FAILED_EXIT
    assert launched == []
    assert notifier.sent == ["Recording failed after all retry attempts: Radio"]


def test_remaining_only_skips_sub_second_retry(radio_trigger, notifier, event_log, paths):
    factory = ScriptedFactory(Timeout(), Success())
    result = supervise(
        radio_trigger, factory, notifier, event_log,
        remaining_only=True, now=lambda: datetime(2024, 1, 1, 20, 59, 59, 500000),
    ).run()

    assert result.attempts == 1
    assert len(factory.calls) == 1
    assert any("Window already closed, not retrying: Radio" in l for l in read_lines(paths.log_file))
