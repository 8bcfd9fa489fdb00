"""Test background notification dispatch."""
import threading

import pytest

from scheduling.errors import NotifierError
from scheduling.notifier import (
    LoggingTransport,
    Notification,
    NotificationKind,
    Notifier,
    render_message,
)


def quick_notifier(transport, **kwargs):
    kwargs.setdefault("backoff_min", 0)
    kwargs.setdefault("backoff_max", 0)
    return Notifier(transport=transport, **kwargs)


def test_delivers_in_background(notifier, transport):
    assert notifier.send(7, NotificationKind.CONFIRMED, "2024-05-01", "09:00") is True

    assert notifier.flush(timeout=5)
    assert len(transport.delivered) == 1
    delivered = transport.delivered[0]
    assert delivered.recipient == "7"
    assert delivered.kind == NotificationKind.CONFIRMED


def test_send_accepts_kind_as_string(notifier, transport):
    notifier.send(7, "cancelled", "2024-05-01", "09:00")

    assert notifier.flush(timeout=5)
    assert transport.kinds == ["cancelled"]


def test_send_starts_worker_lazily(transport):
    notifier = quick_notifier(transport)
    assert not notifier.running
    try:
        notifier.send(7, NotificationKind.UPDATED, "2024-05-01", "09:00")
        assert notifier.running
        assert notifier.flush(timeout=5)
    finally:
        notifier.stop()


def test_transient_failure_is_retried():
    """A transport that fails once still delivers the message."""
    calls = []

    def flaky(notification):
        calls.append(notification)
        if len(calls) == 1:
            raise NotifierError("temporary outage")

    notifier = quick_notifier(flaky, max_attempts=3)
    try:
        notifier.send(7, NotificationKind.CONFIRMED, "2024-05-01", "09:00")
        assert notifier.flush(timeout=5)
    finally:
        notifier.stop()

    assert len(calls) == 2


def test_permanent_failure_is_swallowed_and_worker_keeps_running():
    delivered = []

    def transport(notification):
        if notification.kind == NotificationKind.CONFIRMED:
            raise NotifierError("mailbox rejected")
        delivered.append(notification)

    notifier = quick_notifier(transport, max_attempts=2)
    try:
        notifier.send(7, NotificationKind.CONFIRMED, "2024-05-01", "09:00")
        notifier.send(7, NotificationKind.CANCELLED, "2024-05-01", "09:00")
        assert notifier.flush(timeout=5)
        assert notifier.running
    finally:
        notifier.stop()

    assert [n.kind for n in delivered] == [NotificationKind.CANCELLED]


def test_full_queue_drops_without_blocking():
    """send() never blocks the caller, even when the worker is stuck."""
    release = threading.Event()

    def blocking(notification):
        release.wait(5)

    notifier = quick_notifier(blocking, queue_size=1)
    try:
        results = [notifier.send(7, NotificationKind.CONFIRMED, "2024-05-01", f"0{h}:00") for h in range(8, 10)]
        # One message is in the worker, one fills the queue, the rest are dropped
        results += [notifier.send(7, NotificationKind.CONFIRMED, "2024-05-01", "10:00") for _ in range(3)]
        assert results.count(False) >= 1
    finally:
        release.set()
        notifier.stop()


def test_stop_returns_within_timeout_when_worker_is_stuck():
    release = threading.Event()

    def blocking(notification):
        release.wait(10)

    notifier = quick_notifier(blocking)
    notifier.send(7, NotificationKind.CONFIRMED, "2024-05-01", "09:00")
    try:
        notifier.stop(timeout=0.2)
        assert not notifier.running
    finally:
        release.set()


def test_stop_is_safe_when_never_started(transport):
    quick_notifier(transport).stop()


def test_render_message_mentions_date_time_and_clinic():
    notification = Notification(recipient="7", kind=NotificationKind.UPDATED, date="2024-05-02", time="10:00")

    subject, body = render_message(notification, clinic_name="Test Clinic")

    assert subject == "Appointment updated - Test Clinic"
    assert "2024-05-02" in body
    assert "10:00" in body
    assert body.endswith("Test Clinic")


@pytest.mark.parametrize("kind", list(NotificationKind))
def test_logging_transport_handles_every_kind(kind):
    LoggingTransport(clinic_name="Test Clinic")(
        Notification(recipient="7", kind=kind, date="2024-05-01", time="09:00")
    )
