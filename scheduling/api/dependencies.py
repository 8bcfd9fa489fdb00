"""FastAPI dependency injection functions."""
from typing import Optional

from scheduling.coordinator import SchedulingCoordinator
from scheduling.database import get_database
from scheduling.notifier import Notifier
from scheduling.slot_catalog import SlotCatalog

# Initialize singletons
_notifier: Optional[Notifier] = None
_coordinator: Optional[SchedulingCoordinator] = None


def get_notifier() -> Notifier:
    """Get or create the notifier singleton (logging transport)."""
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier


def get_coordinator() -> SchedulingCoordinator:
    """
    Get or create the coordinator singleton.

    Pattern: build once from the process-wide Database and Notifier, reuse
    across requests. Tests replace it through app.dependency_overrides.
    """
    global _coordinator
    if _coordinator is None:
        _coordinator = SchedulingCoordinator(
            database=get_database(),
            catalog=SlotCatalog(),
            notifier=get_notifier(),
        )
    return _coordinator


def reset_dependencies():
    """Drop cached singletons (called on shutdown)."""
    global _notifier, _coordinator
    _notifier = None
    _coordinator = None
