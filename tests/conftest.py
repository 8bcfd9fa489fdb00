"""Shared test fixtures."""
import threading

import pytest

from scheduling.coordinator import SchedulingCoordinator
from scheduling.database import Database
from scheduling.ledger import AppointmentLedger
from scheduling.notifier import Notifier
from scheduling.slot_catalog import SlotCatalog


class RecordingTransport:
    """Notifier transport that keeps every delivered notification."""

    def __init__(self):
        self.delivered = []
        self._lock = threading.Lock()

    def __call__(self, notification):
        with self._lock:
            self.delivered.append(notification)

    @property
    def kinds(self):
        return [n.kind.value for n in self.delivered]


@pytest.fixture
def database():
    """Create Database with in-memory SQLite and all tables."""
    db = Database("sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def catalog():
    return SlotCatalog()


@pytest.fixture
def ledger():
    return AppointmentLedger()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notifier(transport):
    """Notifier with no retry delay, stopped after the test."""
    notifier = Notifier(transport=transport, max_attempts=3, backoff_min=0, backoff_max=0, shutdown_timeout=2)
    notifier.start()
    yield notifier
    notifier.stop()


@pytest.fixture
def coordinator(database, catalog, ledger, notifier):
    return SchedulingCoordinator(database=database, catalog=catalog, ledger=ledger, notifier=notifier)
