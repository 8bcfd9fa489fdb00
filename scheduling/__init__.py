"""Clinic scheduling: slot catalog, appointment ledger and coordinator."""
from scheduling.coordinator import SchedulingCoordinator
from scheduling.database import Database
from scheduling.ledger import AppointmentLedger
from scheduling.notifier import Notifier
from scheduling.slot_catalog import SlotCatalog

__all__ = ["AppointmentLedger", "Database", "Notifier", "SchedulingCoordinator", "SlotCatalog"]
