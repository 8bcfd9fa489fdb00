"""Domain models returned by the stores and the coordinator.

Pattern: Separate database persistence from domain models.
Slot / Appointment (domain) vs SlotRecord / AppointmentRecord (database).
"""
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from scheduling.state import AppointmentStatus


class SlotKey(NamedTuple):
    """Identifies a provider's time unit on a given day."""
    provider_id: int
    date: str
    time: str


class Slot(BaseModel):
    """A registered slot."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_id: int
    specialty_id: int
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="HH:MM")
    occupied: bool = False


class Appointment(BaseModel):
    """An appointment as stored in the ledger."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    provider_id: int
    specialty_id: int
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="HH:MM")
    ordinal: int = Field(..., description="Patient-scoped sequence number, as stored")
    status: AppointmentStatus

    @property
    def slot_key(self) -> SlotKey:
        return SlotKey(self.provider_id, self.date, self.time)

    @property
    def is_active(self) -> bool:
        return self.status == AppointmentStatus.ACTIVE


class BookingResult(BaseModel):
    """Outcome of a successful booking."""
    appointment_id: int
    ordinal: int


class DayCount(BaseModel):
    """Number of active appointments on one day."""
    date: str
    count: int


class FreeSlot(BaseModel):
    """A free registered time and the provider offering it."""
    provider_id: int
    time: str
