"""Pydantic models for API request/response validation.

Identifiers and dates are accepted as loosely typed values here and parsed
by the coordinator, so malformed input surfaces as VALIDATION_ERROR (400)
with the same messages the core produces.
"""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from scheduling.domain import Appointment, FreeSlot

IdValue = Union[int, str]


class BookingRequest(BaseModel):
    """Request schema for POST /appointments."""
    patient_id: IdValue = Field(..., description="Patient identifier")
    provider_id: IdValue = Field(..., description="Provider identifier")
    specialty_id: IdValue = Field(..., description="Specialty identifier")
    date: str = Field(..., description="Appointment date (YYYY-MM-DD or any parseable date)")
    time: str = Field(..., description="Appointment time (HH:MM)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "patient_id": 7,
                "provider_id": 3,
                "specialty_id": 2,
                "date": "2024-05-01",
                "time": "09:00",
            }
        }
    )


class RescheduleRequest(BaseModel):
    """Request schema for PUT /appointments/{appointment_id}."""
    patient_id: IdValue
    provider_id: IdValue
    date: str
    time: str
    status: str = Field("active", description="active or cancelled")


class StatusRequest(BaseModel):
    status: str = Field(..., description="active or cancelled")


class SlotRequest(BaseModel):
    """Request schema for POST /slots."""
    provider_id: IdValue
    specialty_id: IdValue
    date: str
    time: str
    occupied: bool = False


class SlotUpdateRequest(BaseModel):
    """Partial slot update; omitted fields are left unchanged."""
    provider_id: Optional[IdValue] = None
    specialty_id: Optional[IdValue] = None
    date: Optional[str] = None
    time: Optional[str] = None
    occupied: Optional[bool] = None


class SlotActionRequest(BaseModel):
    action: str = Field(..., description="occupy, release or delete")


class MessageResponse(BaseModel):
    message: str


class BookingResponse(BaseModel):
    message: str
    ordinal: int = Field(..., description="Patient-scoped appointment number")
    appointment_id: int


class SlotCreatedResponse(BaseModel):
    message: str
    slot_id: int


class TimesResponse(BaseModel):
    times: list[str]


class AppointmentListResponse(BaseModel):
    appointments: list[Appointment]


class FreeSlotsResponse(BaseModel):
    slots: list[FreeSlot]


class ErrorResponse(BaseModel):
    """Error response schema."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Detailed error information")
    code: Optional[str] = Field(None, description="Error code")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Conflict",
                "detail": "That time slot is already booked",
                "code": "CONFLICT",
            }
        }
    )
