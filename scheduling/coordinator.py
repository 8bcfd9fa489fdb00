"""Scheduling coordinator.

Keeps the slot catalog and the appointment ledger consistent. Every
operation validates its input first, then runs as one database transaction;
notifications are queued only after the transaction has committed.
"""
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from scheduling import config
from scheduling.database import Database
from scheduling.domain import Appointment, BookingResult, DayCount, FreeSlot, Slot
from scheduling.errors import ConflictError, NotFoundError, ValidationError
from scheduling.input_validator import (
    InputValidator,
    appointment_id as parse_appointment_id,
    patient_id as parse_patient_id,
    provider_id as parse_provider_id,
    slot_id as parse_slot_id,
    specialty_id as parse_specialty_id,
)
from scheduling.ledger import AppointmentLedger
from scheduling.logging_config import get_logger
from scheduling.notifier import NotificationKind, Notifier
from scheduling.slot_catalog import SlotAction, SlotCatalog
from scheduling.state import AppointmentStatus

logger = get_logger(__name__)


class OrdinalCollision(Exception):
    """A concurrent booking for the same patient took the computed ordinal."""


class SchedulingCoordinator:
    """
    Booking, reschedule and cancellation across both stores.

    Lifecycle per appointment:
        active -> active     (reschedule)
        active -> cancelled  (cancel, terminal)
    """

    def __init__(
        self,
        database: Database,
        catalog: Optional[SlotCatalog] = None,
        ledger: Optional[AppointmentLedger] = None,
        notifier: Optional[Notifier] = None,
        ordinal_attempts: int = config.ORDINAL_MAX_ATTEMPTS,
    ):
        """
        Args:
            database: Database providing transactions
            catalog: Slot catalog (default grid from config)
            ledger: Appointment ledger
            notifier: Notification sender; None disables notifications
            ordinal_attempts: Booking attempts when ordinal assignment collides
        """
        self.database = database
        self.catalog = catalog or SlotCatalog()
        self.ledger = ledger or AppointmentLedger()
        self.notifier = notifier
        self.ordinal_attempts = ordinal_attempts

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def book(self, patient, provider, specialty, date, time) -> BookingResult:
        """
        Book a slot for a patient.

        Returns:
            BookingResult with the new appointment id and the patient's ordinal

        Raises:
            ValidationError: Malformed input
            ConflictError: Slot already held, or ordinal assignment kept colliding
        """
        patient = parse_patient_id(patient)
        provider = parse_provider_id(provider)
        specialty = parse_specialty_id(specialty)
        date = InputValidator.normalize_date(date)
        time = InputValidator.normalize_time(time)

        retrying = Retrying(
            stop=stop_after_attempt(self.ordinal_attempts),
            wait=wait_random(0, 0.05),
            retry=retry_if_exception_type(OrdinalCollision),
        )
        try:
            for attempt in retrying:
                with attempt:
                    appointment = self._book_once(patient, provider, specialty, date, time)
        except RetryError:
            logger.warning("ordinal_assignment_exhausted", patient_id=patient, attempts=self.ordinal_attempts)
            raise ConflictError("The appointment could not be booked, please try again")

        logger.info(
            "appointment_booked",
            appointment_id=appointment.id,
            patient_id=patient,
            provider_id=provider,
            date=date,
            time=time,
            ordinal=appointment.ordinal,
        )
        self._notify(NotificationKind.CONFIRMED, appointment)
        return BookingResult(appointment_id=appointment.id, ordinal=appointment.ordinal)

    def reschedule(
        self,
        appointment_id,
        patient,
        provider,
        date,
        time,
        status=AppointmentStatus.ACTIVE,
    ) -> Appointment:
        """
        Move an appointment to a new provider/date/time, atomically.

        The old slot is released and the new one occupied in the same
        transaction; on any failure nothing changes. A cancelled target
        status cancels the appointment and occupies nothing.

        Raises:
            ValidationError: Malformed input
            NotFoundError: Appointment missing or not owned by the patient
            ConflictError: Appointment cancelled, or target slot held by another appointment
        """
        appointment_id = parse_appointment_id(appointment_id)
        patient = parse_patient_id(patient)
        provider = parse_provider_id(provider)
        date = InputValidator.normalize_date(date)
        time = InputValidator.normalize_time(time)
        status = InputValidator.parse_status(status)
        keep_active = status == AppointmentStatus.ACTIVE

        try:
            with self.database.transaction() as db:
                current = self.ledger.get(db, appointment_id)
                if current.patient_id != patient:
                    raise NotFoundError("Appointment not found")
                if not current.is_active:
                    raise ConflictError("Cancelled appointments cannot be rescheduled")
                if keep_active:
                    self._ensure_slot_free(db, provider, date, time, holder_id=appointment_id)

                self.catalog.release(db, *current.slot_key)
                self.ledger.update(db, appointment_id, provider, date, time, status)
                if keep_active:
                    self.catalog.occupy(db, provider, date, time)
                updated = self.ledger.get(db, appointment_id)
        except IntegrityError:
            raise ConflictError("That time slot is already booked")

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment_id,
            previous=f"{current.date} {current.time}",
            current=f"{date} {time}",
            status=status.value,
        )
        kind = NotificationKind.UPDATED if keep_active else NotificationKind.CANCELLED
        self._notify(kind, updated)
        return updated

    def cancel(self, patient, ordinal) -> Appointment:
        """
        Cancel a patient's active appointment by ordinal and free its slot.

        Raises:
            NotFoundError: No active appointment with that ordinal
        """
        patient = parse_patient_id(patient)
        ordinal = InputValidator.parse_id(ordinal, "ordinal")

        with self.database.transaction() as db:
            cancelled = self.ledger.cancel_by_ordinal(db, patient, ordinal)
            self.catalog.release(db, *cancelled.slot_key)

        logger.info("slot_released", provider_id=cancelled.provider_id, date=cancelled.date, time=cancelled.time)
        self._notify(NotificationKind.CANCELLED, cancelled)
        return cancelled

    def set_appointment_status(self, appointment_id, status) -> Appointment:
        """Administrative status override. Slots are not touched."""
        appointment_id = parse_appointment_id(appointment_id)
        status = InputValidator.parse_status(status)

        with self.database.transaction() as db:
            return self.ledger.set_status(db, appointment_id, status)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def available_times(self, provider, specialty, date) -> list[str]:
        provider = parse_provider_id(provider)
        specialty = parse_specialty_id(specialty)
        date = InputValidator.normalize_date(date)

        with self.database.transaction() as db:
            booked = self.ledger.active_times(db, provider, date)
            return self.catalog.list_available(db, provider, specialty, date, booked)

    def registered_times(self, provider, specialty, date) -> list[str]:
        provider = parse_provider_id(provider)
        specialty = parse_specialty_id(specialty)
        date = InputValidator.normalize_date(date)

        with self.database.transaction() as db:
            return self.catalog.list_registered(db, provider, specialty, date)

    def free_slots(self, specialty, date) -> list[FreeSlot]:
        """Free registered slots for a specialty on one day, across all providers."""
        specialty = parse_specialty_id(specialty)
        date = InputValidator.normalize_date(date)

        with self.database.transaction() as db:
            return self.catalog.list_free_by_specialty(db, specialty, date)

    def appointments_for_patient(self, patient) -> list[Appointment]:
        patient = parse_patient_id(patient)
        with self.database.transaction() as db:
            return self.ledger.list_for_patient(db, patient)

    def appointments_for_provider(self, provider) -> list[Appointment]:
        provider = parse_provider_id(provider)
        with self.database.transaction() as db:
            return self.ledger.list_for_provider(db, provider)

    def appointments_per_day(self) -> list[DayCount]:
        with self.database.transaction() as db:
            return self.ledger.count_by_date(db)

    def appointment_detail(self, appointment_id) -> Appointment:
        appointment_id = parse_appointment_id(appointment_id)
        with self.database.transaction() as db:
            return self.ledger.get(db, appointment_id)

    def appointment_by_ordinal(self, patient, ordinal) -> Appointment:
        patient = parse_patient_id(patient)
        ordinal = InputValidator.parse_id(ordinal, "ordinal")
        with self.database.transaction() as db:
            return self.ledger.get_by_ordinal(db, patient, ordinal)

    def all_appointments(self) -> list[Appointment]:
        with self.database.transaction() as db:
            return self.ledger.list_all(db)

    # ------------------------------------------------------------------
    # Slot administration
    # ------------------------------------------------------------------

    def register_slot(self, provider, specialty, date, time, occupied: bool = False) -> Slot:
        """
        Register a slot for a provider.

        A slot registered at a time already held by an active appointment is
        stored as occupied.
        """
        provider = parse_provider_id(provider)
        specialty = parse_specialty_id(specialty)
        date = InputValidator.normalize_date(date)
        time = InputValidator.normalize_time(time)

        with self.database.transaction() as db:
            held = self.ledger.find_active_at(db, provider, date, time) is not None
            return self.catalog.register_slot(db, provider, specialty, date, time, occupied=bool(occupied) or held)

    def update_slot(self, slot_id, **fields) -> Slot:
        """Merge-update a registered slot with the supplied fields only."""
        slot_id = parse_slot_id(slot_id)
        fields = {name: value for name, value in fields.items() if value is not None}

        if "provider_id" in fields:
            fields["provider_id"] = parse_provider_id(fields["provider_id"])
        if "specialty_id" in fields:
            fields["specialty_id"] = parse_specialty_id(fields["specialty_id"])
        if "date" in fields:
            fields["date"] = InputValidator.normalize_date(fields["date"])
        if "time" in fields:
            fields["time"] = InputValidator.normalize_time(fields["time"])
        if "occupied" in fields:
            fields["occupied"] = bool(fields["occupied"])

        with self.database.transaction() as db:
            return self.catalog.update_slot(db, slot_id, **fields)

    def edit_slot(self, provider, date, time, action) -> int:
        """
        Occupy, release or delete the slot rows at (provider, date, time).

        Returns:
            Number of slot rows affected
        """
        provider = parse_provider_id(provider)
        date = InputValidator.normalize_date(date)
        time = InputValidator.normalize_time(time)
        try:
            action = SlotAction(str(action).strip().lower())
        except ValueError:
            raise ValidationError("Invalid action. Use occupy, release or delete")

        with self.database.transaction() as db:
            return self.catalog.edit_by_key(db, provider, date, time, action)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _book_once(self, patient: int, provider: int, specialty: int, date: str, time: str) -> Appointment:
        """One booking attempt in its own transaction."""
        try:
            with self.database.transaction() as db:
                self._ensure_slot_free(db, provider, date, time)
                appointment = self.ledger.create(db, patient, provider, specialty, date, time)
                self.catalog.occupy(db, provider, date, time)
                return appointment
        except IntegrityError as e:
            # The insert lost a race: either the slot or the ordinal was taken
            with self.database.transaction() as db:
                if self.ledger.find_active_at(db, provider, date, time) is not None:
                    raise ConflictError("That time slot is already booked") from e
            logger.info("ordinal_collision", patient_id=patient)
            raise OrdinalCollision() from e

    def _ensure_slot_free(
        self,
        db: Session,
        provider: int,
        date: str,
        time: str,
        holder_id: Optional[int] = None,
    ):
        """Raise ConflictError unless the slot is free or held by holder_id."""
        holder = self.ledger.find_active_at(db, provider, date, time)
        if holder is not None:
            if holder.id != holder_id:
                raise ConflictError("That time slot is already booked")
            return
        if self.catalog.is_occupied(db, provider, date, time):
            raise ConflictError("That time slot is not available")

    def _notify(self, kind: NotificationKind, appointment: Appointment):
        if self.notifier is None:
            return
        try:
            self.notifier.send(appointment.patient_id, kind, appointment.date, appointment.time)
        except Exception as e:
            logger.warning("notification_enqueue_failed", kind=kind.value, error=str(e))
