"""FastAPI server for the clinic scheduling service.

Features:
- Booking, reschedule and cancellation endpoints
- Slot registration and administration
- Request IDs on every response (X-Request-ID) and in every log line
- Error taxonomy mapped to HTTP status codes
- Health check endpoint

Endpoints are plain `def` functions: the coordinator does blocking database
work, so FastAPI runs them in its threadpool.
"""
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scheduling import config
from scheduling.api.dependencies import get_coordinator, get_notifier, reset_dependencies
from scheduling.api.models import (
    AppointmentListResponse,
    BookingRequest,
    BookingResponse,
    FreeSlotsResponse,
    ErrorResponse,
    MessageResponse,
    RescheduleRequest,
    SlotActionRequest,
    SlotCreatedResponse,
    SlotRequest,
    SlotUpdateRequest,
    StatusRequest,
    TimesResponse,
)
from scheduling.coordinator import SchedulingCoordinator
from scheduling.database import close_database, init_database
from scheduling.domain import Appointment, DayCount
from scheduling.errors import SchedulingError
from scheduling.logging_config import RequestIDMiddleware, get_logger, setup_structured_logging

setup_structured_logging(config.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    logger.info("server_starting")

    try:
        init_database()
    except Exception as e:
        logger.error("database_init_failed", error=str(e))
        raise

    notifier = get_notifier()
    notifier.start()

    yield

    notifier.stop()
    reset_dependencies()
    close_database()
    logger.info("server_stopped")


app = FastAPI(
    title="Clinic Scheduling API",
    description="Appointment booking, rescheduling and cancellation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "PATCH"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestIDMiddleware)


# Global exception handlers
@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Map the error taxonomy to status codes with a short message."""
    if exc.status_code >= 500:
        logger.error("request_failed", code=exc.code, error=exc.message)
    else:
        logger.info("request_rejected", code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=HTTPStatus(exc.status_code).phrase,
            detail=exc.message,
            code=exc.code,
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors like any other invalid input."""
    logger.info("request_rejected", code="VALIDATION_ERROR", errors=str(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="Bad Request",
            detail="Request body is missing required fields or has invalid types",
            code="VALIDATION_ERROR",
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected exceptions."""
    logger.error("unexpected_error", error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal Server Error",
            detail="An unexpected error occurred. Please try again later.",
            code="INTERNAL_ERROR",
        ).model_dump(),
    )


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "service": "clinic-scheduling-api", "version": "1.0.0"}


# ----------------------------------------------------------------------
# Appointments
# ----------------------------------------------------------------------

@app.post(
    "/appointments",
    tags=["Appointments"],
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def book_appointment(
    request: BookingRequest,
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """
    Book a slot for a patient.

    Raises:
        400: Invalid input
        409: Slot already booked
    """
    result = coordinator.book(
        request.patient_id,
        request.provider_id,
        request.specialty_id,
        request.date,
        request.time,
    )
    return BookingResponse(message="Appointment booked", ordinal=result.ordinal, appointment_id=result.appointment_id)


@app.get("/appointments", tags=["Appointments"], response_model=AppointmentListResponse)
def list_appointments(coordinator: SchedulingCoordinator = Depends(get_coordinator)):
    return AppointmentListResponse(appointments=coordinator.all_appointments())


# Declared before /appointments/{appointment_id} so "per-day" is not read as an id
@app.get("/appointments/per-day", tags=["Appointments"], response_model=list[DayCount])
def appointments_per_day(coordinator: SchedulingCoordinator = Depends(get_coordinator)):
    """Active appointments per day, ascending by date."""
    return coordinator.appointments_per_day()


@app.get("/appointments/{appointment_id}", tags=["Appointments"], response_model=Appointment)
def get_appointment(appointment_id: str, coordinator: SchedulingCoordinator = Depends(get_coordinator)):
    return coordinator.appointment_detail(appointment_id)


@app.put("/appointments/{appointment_id}", tags=["Appointments"], response_model=MessageResponse)
def reschedule_appointment(
    appointment_id: str,
    request: RescheduleRequest,
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """
    Move an appointment to a new provider/date/time.

    Raises:
        400: Invalid input
        404: Appointment not found for this patient
        409: Target slot booked, or appointment already cancelled
    """
    coordinator.reschedule(
        appointment_id,
        request.patient_id,
        request.provider_id,
        request.date,
        request.time,
        request.status,
    )
    return MessageResponse(message="Appointment updated")


@app.put("/appointments/{appointment_id}/status", tags=["Appointments"], response_model=MessageResponse)
def set_appointment_status(
    appointment_id: str,
    request: StatusRequest,
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """Administrative status override; slots are not touched."""
    coordinator.set_appointment_status(appointment_id, request.status)
    return MessageResponse(message="Appointment status updated")


@app.get("/patients/{patient_id}/appointments", tags=["Patients"], response_model=AppointmentListResponse)
def list_patient_appointments(patient_id: str, coordinator: SchedulingCoordinator = Depends(get_coordinator)):
    return AppointmentListResponse(appointments=coordinator.appointments_for_patient(patient_id))


@app.get("/patients/{patient_id}/appointments/{ordinal}", tags=["Patients"], response_model=Appointment)
def get_patient_appointment(
    patient_id: str,
    ordinal: str,
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    return coordinator.appointment_by_ordinal(patient_id, ordinal)


@app.post(
    "/patients/{patient_id}/appointments/{ordinal}/cancel",
    tags=["Patients"],
    response_model=MessageResponse,
)
def cancel_appointment(
    patient_id: str,
    ordinal: str,
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """
    Cancel a patient's appointment by ordinal and free its slot.

    Raises:
        400: Patient id or ordinal is not a positive integer
        404: No active appointment with that ordinal
    """
    coordinator.cancel(patient_id, ordinal)
    return MessageResponse(message="Appointment cancelled")


# ----------------------------------------------------------------------
# Providers and slots
# ----------------------------------------------------------------------

@app.get("/providers/{provider_id}/appointments", tags=["Providers"], response_model=AppointmentListResponse)
def list_provider_appointments(provider_id: str, coordinator: SchedulingCoordinator = Depends(get_coordinator)):
    return AppointmentListResponse(appointments=coordinator.appointments_for_provider(provider_id))


@app.get("/providers/{provider_id}/slots/available", tags=["Slots"], response_model=TimesResponse)
def available_slots(
    provider_id: str,
    date: str = Query(..., description="Day to list (YYYY-MM-DD)"),
    specialty: str = Query(..., description="Specialty identifier"),
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """Free times for a provider/specialty on one day."""
    return TimesResponse(times=coordinator.available_times(provider_id, specialty, date))


@app.get("/providers/{provider_id}/slots/registered", tags=["Slots"], response_model=TimesResponse)
def registered_slots(
    provider_id: str,
    date: str = Query(...),
    specialty: str = Query(...),
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """Occupied registered times for a provider/specialty on one day."""
    return TimesResponse(times=coordinator.registered_times(provider_id, specialty, date))


@app.put("/providers/{provider_id}/slots/{date}/{time}", tags=["Slots"], response_model=MessageResponse)
def edit_slot(
    provider_id: str,
    date: str,
    time: str,
    request: SlotActionRequest,
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """
    Occupy, release or delete the slot at (provider, date, time).

    Raises:
        404: No slot registered at that key
        409: Release or delete refused while an active appointment holds the slot
    """
    coordinator.edit_slot(provider_id, date, time, request.action)
    return MessageResponse(message="Slot updated")


@app.post(
    "/slots",
    tags=["Slots"],
    response_model=SlotCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_slot(request: SlotRequest, coordinator: SchedulingCoordinator = Depends(get_coordinator)):
    """
    Register a slot for a provider.

    Raises:
        409: Slot already registered
    """
    slot = coordinator.register_slot(
        request.provider_id,
        request.specialty_id,
        request.date,
        request.time,
        occupied=request.occupied,
    )
    return SlotCreatedResponse(message="Slot registered", slot_id=slot.id)


@app.get("/slots/free", tags=["Slots"], response_model=FreeSlotsResponse)
def free_slots(
    date: str = Query(..., description="Day to list (YYYY-MM-DD)"),
    specialty: str = Query(..., description="Specialty identifier"),
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """Free registered slots for a specialty on one day, across all providers, by time."""
    return FreeSlotsResponse(slots=coordinator.free_slots(specialty, date))


@app.patch("/slots/{slot_id}", tags=["Slots"], response_model=MessageResponse)
def update_slot(
    slot_id: str,
    request: SlotUpdateRequest,
    coordinator: SchedulingCoordinator = Depends(get_coordinator),
):
    """Partial slot update. Raises 400 when no field is supplied, 409 when a booked slot would move or be freed."""
    coordinator.update_slot(slot_id, **request.model_dump(exclude_none=True))
    return MessageResponse(message="Slot updated")


def main():
    import uvicorn

    uvicorn.run(
        "scheduling.api_server:app",
        host="0.0.0.0",
        port=config.API_PORT,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
