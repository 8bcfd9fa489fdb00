"""Appointment ledger.

Appointments are never deleted. Cancellation flips the status, and a
cancelled appointment stays cancelled.
"""
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from scheduling.database_models import AppointmentRecord, utc_now
from scheduling.domain import Appointment, DayCount, SlotKey
from scheduling.errors import ConflictError, NotFoundError
from scheduling.logging_config import get_logger
from scheduling.state import AppointmentStatus, can_transition

logger = get_logger(__name__)

ACTIVE = AppointmentStatus.ACTIVE.value
CANCELLED = AppointmentStatus.CANCELLED.value


class AppointmentLedger:
    """
    Stores appointments and their per-patient ordinals.

    Methods take the caller's session; uniqueness violations raised by the
    database (IntegrityError) propagate so the caller can decide whether it
    lost a slot or an ordinal race.
    """

    def create(
        self,
        db: Session,
        patient_id: int,
        provider_id: int,
        specialty_id: int,
        date: str,
        time: str,
    ) -> Appointment:
        """
        Insert an active appointment with the patient's next ordinal.

        The ordinal is the count of the patient's existing appointments
        (any status) plus one.

        Raises:
            IntegrityError: Slot already held by an active appointment, or a
                concurrent booking took the same ordinal
        """
        count = db.scalar(
            select(func.count()).select_from(AppointmentRecord).where(
                AppointmentRecord.patient_id == patient_id
            )
        )

        record = AppointmentRecord(
            patient_id=patient_id,
            provider_id=provider_id,
            specialty_id=specialty_id,
            date=date,
            time=time,
            ordinal=count + 1,
            status=ACTIVE,
        )
        db.add(record)
        db.flush()

        logger.info("appointment_created", appointment_id=record.id, patient_id=patient_id, ordinal=record.ordinal)
        return Appointment.model_validate(record)

    def get(self, db: Session, appointment_id: int) -> Appointment:
        """Fetch an appointment by id. Raises NotFoundError if absent."""
        return Appointment.model_validate(self._get_record(db, appointment_id))

    def get_by_ordinal(self, db: Session, patient_id: int, ordinal: int) -> Appointment:
        """Fetch a patient's appointment by ordinal, any status."""
        record = db.scalars(
            select(AppointmentRecord).where(
                AppointmentRecord.patient_id == patient_id,
                AppointmentRecord.ordinal == ordinal,
            )
        ).first()
        if record is None:
            raise NotFoundError("Appointment not found")
        return Appointment.model_validate(record)

    def update(
        self,
        db: Session,
        appointment_id: int,
        provider_id: int,
        date: str,
        time: str,
        status: AppointmentStatus,
    ) -> SlotKey:
        """
        Overwrite an appointment's provider, date, time and status.

        Patient and specialty are never changed here.

        Returns:
            The slot key the appointment held before the update

        Raises:
            NotFoundError: Unknown appointment
            ConflictError: The appointment is cancelled
            IntegrityError: The target slot is held by another active appointment
        """
        record = self._get_record(db, appointment_id)
        if record.status != ACTIVE:
            raise ConflictError("Cancelled appointments cannot be changed")

        previous = SlotKey(record.provider_id, record.date, record.time)

        record.provider_id = provider_id
        record.date = date
        record.time = time
        record.status = AppointmentStatus(status).value
        db.flush()

        logger.info(
            "appointment_updated",
            appointment_id=appointment_id,
            previous=f"{previous.date} {previous.time}",
            current=f"{date} {time}",
            status=record.status,
        )
        return previous

    def cancel_by_ordinal(self, db: Session, patient_id: int, ordinal: int) -> Appointment:
        """
        Cancel a patient's active appointment by ordinal.

        Raises:
            NotFoundError: No active appointment with that ordinal (including
                one that is already cancelled)
        """
        record = db.scalars(
            select(AppointmentRecord).where(
                AppointmentRecord.patient_id == patient_id,
                AppointmentRecord.ordinal == ordinal,
                AppointmentRecord.status == ACTIVE,
            )
        ).first()
        if record is None:
            raise NotFoundError("Appointment not found")

        # Guarded on status so two concurrent cancels cannot both succeed
        result = db.execute(
            update(AppointmentRecord)
            .where(AppointmentRecord.id == record.id, AppointmentRecord.status == ACTIVE)
            .values(status=CANCELLED, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Appointment not found")

        db.refresh(record)
        logger.info("appointment_cancelled", appointment_id=record.id, patient_id=patient_id, ordinal=ordinal)
        return Appointment.model_validate(record)

    def set_status(self, db: Session, appointment_id: int, status: AppointmentStatus) -> Appointment:
        """
        Set an appointment's status without touching slots.

        Setting the current status again is a no-op.

        Raises:
            NotFoundError: Unknown appointment
            ConflictError: Attempt to reactivate a cancelled appointment
        """
        record = self._get_record(db, appointment_id)
        current = AppointmentStatus(record.status)
        target = AppointmentStatus(status)

        if current == target:
            return Appointment.model_validate(record)
        if not can_transition(current, target):
            raise ConflictError(f"Cannot change a {current.value} appointment to {target.value}")

        record.status = target.value
        db.flush()

        logger.info("appointment_status_set", appointment_id=appointment_id, status=target.value)
        return Appointment.model_validate(record)

    def find_active_at(
        self,
        db: Session,
        provider_id: int,
        date: str,
        time: str,
    ) -> Optional[Appointment]:
        """Return the active appointment holding (provider, date, time), if any."""
        record = db.scalars(
            select(AppointmentRecord).where(
                AppointmentRecord.provider_id == provider_id,
                AppointmentRecord.date == date,
                AppointmentRecord.time == time,
                AppointmentRecord.status == ACTIVE,
            )
        ).first()
        return Appointment.model_validate(record) if record else None

    def active_times(self, db: Session, provider_id: int, date: str) -> list[str]:
        """Times a provider has active appointments on a day, any specialty."""
        return list(db.scalars(
            select(AppointmentRecord.time).where(
                AppointmentRecord.provider_id == provider_id,
                AppointmentRecord.date == date,
                AppointmentRecord.status == ACTIVE,
            ).order_by(AppointmentRecord.time)
        ))

    def list_for_patient(self, db: Session, patient_id: int) -> list[Appointment]:
        """All of a patient's appointments in creation order, with stored ordinals."""
        records = db.scalars(
            select(AppointmentRecord)
            .where(AppointmentRecord.patient_id == patient_id)
            .order_by(AppointmentRecord.ordinal, AppointmentRecord.id)
        )
        return [Appointment.model_validate(r) for r in records]

    def list_for_provider(self, db: Session, provider_id: int) -> list[Appointment]:
        records = db.scalars(
            select(AppointmentRecord)
            .where(AppointmentRecord.provider_id == provider_id)
            .order_by(AppointmentRecord.date, AppointmentRecord.time, AppointmentRecord.id)
        )
        return [Appointment.model_validate(r) for r in records]

    def list_all(self, db: Session) -> list[Appointment]:
        records = db.scalars(
            select(AppointmentRecord).order_by(
                AppointmentRecord.patient_id, AppointmentRecord.date, AppointmentRecord.time
            )
        )
        return [Appointment.model_validate(r) for r in records]

    def count_by_date(self, db: Session) -> list[DayCount]:
        """Active appointments per day, ascending by date."""
        rows = db.execute(
            select(AppointmentRecord.date, func.count(AppointmentRecord.id))
            .where(AppointmentRecord.status == ACTIVE)
            .group_by(AppointmentRecord.date)
            .order_by(AppointmentRecord.date)
        ).all()
        return [DayCount(date=day, count=count) for day, count in rows]

    @staticmethod
    def _get_record(db: Session, appointment_id: int) -> AppointmentRecord:
        record = db.get(AppointmentRecord, appointment_id)
        if record is None:
            raise NotFoundError("Appointment not found")
        return record
