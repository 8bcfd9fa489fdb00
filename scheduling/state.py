"""Appointment lifecycle states.

An appointment is created active. It can be rescheduled any number of times
(active -> active) or cancelled once (active -> cancelled). Cancellation is
terminal.
"""
from enum import Enum
from typing import Dict


class AppointmentStatus(str, Enum):
    """Discrete appointment states."""
    ACTIVE = "active"
    CANCELLED = "cancelled"


# State machine transition map
# Pattern: Current state -> [allowed next states]
VALID_TRANSITIONS: Dict[AppointmentStatus, list[AppointmentStatus]] = {
    AppointmentStatus.ACTIVE: [
        AppointmentStatus.ACTIVE,  # Reschedule
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.CANCELLED: [],  # Terminal
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Return True if the lifecycle allows moving from current to target."""
    return AppointmentStatus(target) in VALID_TRANSITIONS[AppointmentStatus(current)]
