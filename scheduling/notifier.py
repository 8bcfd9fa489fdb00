"""Background notification dispatch.

Pattern: bounded queue + one daemon worker thread. Producers never block and
never see delivery errors; the worker retries each message with exponential
backoff (tenacity) and logs what it could not deliver.
"""
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Callable, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scheduling import config
from scheduling.logging_config import get_logger

logger = get_logger(__name__)

# tenacity's before_sleep_log wants a stdlib logger
retry_logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    CONFIRMED = "confirmed"
    UPDATED = "updated"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Notification:
    """One message for a patient about an appointment."""
    recipient: str
    kind: NotificationKind
    date: str
    time: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


Transport = Callable[[Notification], None]

SUBJECTS = {
    NotificationKind.CONFIRMED: "Appointment confirmed",
    NotificationKind.UPDATED: "Appointment updated",
    NotificationKind.CANCELLED: "Appointment cancelled",
}

BODIES = {
    NotificationKind.CONFIRMED: "Your appointment has been booked for {date} at {time}.",
    NotificationKind.UPDATED: "Your appointment has been moved to {date} at {time}.",
    NotificationKind.CANCELLED: "Your appointment on {date} at {time} has been cancelled.",
}


def render_message(notification: Notification, clinic_name: str = config.CLINIC_NAME) -> tuple[str, str]:
    """
    Render subject and body for a notification.

    Returns:
        (subject, body)
    """
    subject = f"{SUBJECTS[notification.kind]} - {clinic_name}"
    body = BODIES[notification.kind].format(date=notification.date, time=notification.time)
    return subject, f"{body}\n\n{clinic_name}"


class LoggingTransport:
    """Default transport: writes the rendered message to the log.

    Real delivery (mail, messaging) plugs in as any callable taking a
    Notification and raising on failure.
    """

    def __init__(self, clinic_name: str = config.CLINIC_NAME):
        self.clinic_name = clinic_name

    def __call__(self, notification: Notification):
        subject, body = render_message(notification, self.clinic_name)
        logger.info(
            "notification_delivered",
            recipient=notification.recipient,
            kind=notification.kind.value,
            subject=subject,
            body=body,
        )


_STOP = object()


class Notifier:
    """
    Asynchronous, best-effort notification sender.

    Usage:
        notifier = Notifier(transport=my_transport)
        notifier.start()
        notifier.send("7", NotificationKind.CONFIRMED, "2024-05-01", "09:00")
        notifier.stop()
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        queue_size: int = config.NOTIFIER["queue_size"],
        max_attempts: int = config.NOTIFIER["max_attempts"],
        backoff_min: float = config.NOTIFIER["backoff_min"],
        backoff_max: float = config.NOTIFIER["backoff_max"],
        shutdown_timeout: float = config.NOTIFIER["shutdown_timeout"],
    ):
        """
        Args:
            transport: Callable delivering one Notification (default: LoggingTransport)
            queue_size: Pending messages kept before new ones are dropped
            max_attempts: Delivery attempts per message
            backoff_min: First retry delay in seconds (doubles per attempt)
            backoff_max: Retry delay cap in seconds
            shutdown_timeout: Seconds stop() waits for the queue to drain
        """
        self.transport = transport or LoggingTransport()
        self.shutdown_timeout = shutdown_timeout
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._idle = threading.Condition()
        self._pending = 0
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=backoff_min, min=backoff_min, max=backoff_max),
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep_log(retry_logger, logging.WARNING),
            reraise=True,
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the worker thread (no-op if already running)."""
        with self._lock:
            if self.running:
                return
            self._thread = threading.Thread(target=self._run, name="notifier", daemon=True)
            self._thread.start()
            logger.info("notifier_started")

    def send(self, recipient, kind: NotificationKind, date: str, time: str) -> bool:
        """
        Enqueue a notification. Never blocks and never raises.

        Returns:
            True if queued, False if the queue was full and the message dropped
        """
        notification = Notification(
            recipient=str(recipient),
            kind=NotificationKind(kind),
            date=date,
            time=time,
        )
        if not self.running:
            self.start()

        with self._idle:
            self._pending += 1
        try:
            self._queue.put_nowait(notification)
        except queue.Full:
            self._done()
            logger.warning("notification_dropped", recipient=notification.recipient, kind=notification.kind.value)
            return False
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued notification has been handled.

        Returns:
            True if the queue drained, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def stop(self, timeout: Optional[float] = None):
        """
        Drain the queue and stop the worker.

        Waits at most `timeout` seconds (default shutdown_timeout); messages
        still queued after that are abandoned.
        """
        timeout = self.shutdown_timeout if timeout is None else timeout
        with self._lock:
            thread = self._thread
            if thread is None or not thread.is_alive():
                self._thread = None
                return

            drained = self.flush(timeout)
            try:
                self._queue.put(_STOP, timeout=max(timeout, 0.1))
            except queue.Full:
                logger.warning("notifier_stop_timeout", pending=self._pending)
            else:
                thread.join(timeout)
            self._thread = None

        logger.info("notifier_stopped", drained=drained)

    def _run(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            try:
                self._retrying(self.transport, item)
                logger.info("notification_sent", recipient=item.recipient, kind=item.kind.value)
            except Exception as e:
                # Delivery is best-effort; the appointment is already committed
                logger.error(
                    "notification_failed",
                    recipient=item.recipient,
                    kind=item.kind.value,
                    error=str(e),
                )
            finally:
                self._done()

    def _done(self):
        with self._idle:
            self._pending -= 1
            if self._pending <= 0:
                self._pending = 0
                self._idle.notify_all()
