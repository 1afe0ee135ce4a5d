"""Turn a terminal :class:`RetryResult` into one log line and one notification."""

from __future__ import annotations

from core.outcomes import (
    STATUS_CANCELLED,
    STATUS_NO_MATCHING_WINDOW,
    STATUS_SUCCESS,
    RetryResult,
)
from core.schedule import TriggerEvent
from sdk.notifier import DeliveryResult, Notifier

from .event_writer import EventLog


def notification_text(trigger: TriggerEvent, result: RetryResult) -> str:
    name = trigger.source_name
    status = result.status
    if status == STATUS_SUCCESS:
        return f"Recording completed: {name}"
    if status == STATUS_NO_MATCHING_WINDOW:
        return f"Error: No matching schedule found for {name} at {trigger.window_start:%Y-%m-%d %H:%M:%S}"
    if status == STATUS_CANCELLED:
        return f"Recording stopped: {name}"
    return f"Recording failed after all retry attempts: {name}"


class OutcomeReporter:
    """Log and notify a trigger's terminal outcome.

    Delivery problems are logged and returned, never raised: a broken
    webhook must not change what happens to the recording.
    """

    def __init__(self, log: EventLog, notifier: Notifier) -> None:
        self.log = log
        self.notifier = notifier

    def report(self, trigger: TriggerEvent, result: RetryResult, job_id: str = "") -> DeliveryResult:
        message = notification_text(trigger, result)
        self.log.record(
            "outcome",
            f"{message} (attempts: {result.attempts})",
            source=trigger.source_name,
            job_id=job_id,
            status=result.status,
            outcome=result.outcome.kind,
            attempts=result.attempts,
            window_start=trigger.window_start.isoformat(),
        )
        return self.notify(message, source=trigger.source_name, job_id=job_id)

    def notify(self, message: str, **context) -> DeliveryResult:
        try:
            delivery = self.notifier.send(message)
        except Exception as exc:  # plugin boundary: third-party transports may raise anything
            delivery = DeliveryResult(ok=False, error=f"{type(exc).__name__}: {exc}")
        if delivery.ok:
            self.log.record("notify", f"Notification sent: {message}", delivered=True, **context)
        else:
            self.log.record(
                "notify",
                f"Error sending notification: {delivery.error}",
                delivered=False,
                status_code=delivery.status_code,
                **context,
            )
        return delivery


__all__ = ["OutcomeReporter", "notification_text"]
