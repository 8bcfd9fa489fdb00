"""Slot catalog: occupancy of each provider's daily time grid.

All methods run inside the caller's transaction and take its session as the
first argument, so a coordinator operation can combine catalog and ledger
writes into one atomic unit.
"""
from enum import Enum
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scheduling import config
from scheduling.database_models import AppointmentRecord, SlotRecord
from scheduling.domain import FreeSlot, Slot
from scheduling.errors import ConflictError, NotFoundError, ValidationError
from scheduling.logging_config import get_logger
from scheduling.state import AppointmentStatus

logger = get_logger(__name__)


class SlotAction(str, Enum):
    """Administrative edits addressed by (provider, date, time)."""
    OCCUPY = "occupy"
    RELEASE = "release"
    DELETE = "delete"


class SlotCatalog:
    """
    Tracks registered slots and which of them are occupied.

    A time that has no registered row is treated as free. Availability is
    the fixed daily grid (plus any registered off-grid times) minus what is
    occupied.
    """

    UPDATABLE_FIELDS = frozenset({"provider_id", "specialty_id", "date", "time", "occupied"})

    def __init__(self, grid: Optional[Sequence[str]] = None):
        """
        Args:
            grid: Daily slot times ("HH:MM"). Defaults to config.default_slot_grid()
        """
        self.grid = sorted(grid) if grid is not None else config.default_slot_grid()

    def register_slot(
        self,
        db: Session,
        provider_id: int,
        specialty_id: int,
        date: str,
        time: str,
        occupied: bool = False,
    ) -> Slot:
        """
        Register a slot row.

        Raises:
            ConflictError: If (provider, specialty, date, time) already exists
        """
        record = SlotRecord(
            provider_id=provider_id,
            specialty_id=specialty_id,
            date=date,
            time=time,
            occupied=occupied,
        )
        try:
            with db.begin_nested():
                db.add(record)
                db.flush()
        except IntegrityError:
            raise ConflictError("That slot is already registered for this provider")

        logger.info("slot_registered", slot_id=record.id, provider_id=provider_id, date=date, time=time)
        return Slot.model_validate(record)

    def get_slot(self, db: Session, slot_id: int) -> Slot:
        """Fetch a slot by id. Raises NotFoundError if absent."""
        record = db.get(SlotRecord, slot_id)
        if record is None:
            raise NotFoundError("Slot not found")
        return Slot.model_validate(record)

    def occupy(self, db: Session, provider_id: int, date: str, time: str) -> int:
        """
        Mark matching slot rows occupied.

        Returns:
            Number of rows matched (0 when no slot is registered, a no-op)
        """
        return self._set_occupied(db, provider_id, date, time, True)

    def release(self, db: Session, provider_id: int, date: str, time: str) -> int:
        """
        Mark matching slot rows free.

        Returns:
            Number of rows matched (0 when no slot is registered, a no-op)
        """
        return self._set_occupied(db, provider_id, date, time, False)

    def is_occupied(self, db: Session, provider_id: int, date: str, time: str) -> bool:
        """Return True if any registered row for the key is occupied."""
        return bool(db.scalar(
            select(exists().where(
                SlotRecord.provider_id == provider_id,
                SlotRecord.date == date,
                SlotRecord.time == time,
                SlotRecord.occupied.is_(True),
            ))
        ))

    def list_available(
        self,
        db: Session,
        provider_id: int,
        specialty_id: int,
        date: str,
        booked: Iterable[str] = (),
    ) -> list[str]:
        """
        List free times for a provider/specialty on one day.

        Args:
            booked: Times held by active appointments, excluded even when no
                slot row was registered for them

        Returns:
            Ascending "HH:MM" strings
        """
        rows = db.execute(
            select(SlotRecord.time, SlotRecord.occupied).where(
                SlotRecord.provider_id == provider_id,
                SlotRecord.specialty_id == specialty_id,
                SlotRecord.date == date,
            )
        ).all()

        candidates = set(self.grid) | {row.time for row in rows}
        taken = {row.time for row in rows if row.occupied} | set(booked)
        return sorted(candidates - taken)

    def list_registered(self, db: Session, provider_id: int, specialty_id: int, date: str) -> list[str]:
        """List occupied registered times for a provider/specialty on one day, ascending."""
        return list(db.scalars(
            select(SlotRecord.time).where(
                SlotRecord.provider_id == provider_id,
                SlotRecord.specialty_id == specialty_id,
                SlotRecord.date == date,
                SlotRecord.occupied.is_(True),
            ).order_by(SlotRecord.time)
        ))

    def list_free_by_specialty(self, db: Session, specialty_id: int, date: str) -> list[FreeSlot]:
        """
        List free registered slots for a specialty on one day, across providers.

        Only registered rows are considered; grid times without a row are not
        listed here.

        Returns:
            FreeSlot entries ordered by time, then provider
        """
        rows = db.execute(
            select(SlotRecord.provider_id, SlotRecord.time).where(
                SlotRecord.specialty_id == specialty_id,
                SlotRecord.date == date,
                SlotRecord.occupied.is_(False),
            ).order_by(SlotRecord.time, SlotRecord.provider_id)
        ).all()
        return [FreeSlot(provider_id=row.provider_id, time=row.time) for row in rows]

    def update_slot(self, db: Session, slot_id: int, **fields) -> Slot:
        """
        Merge-update a slot; only the supplied fields change.

        A slot held by an active appointment keeps its (provider, date, time)
        and stays occupied. A slot moved onto a held time is stored occupied.
        Setting occupied on a slot nobody holds is an administrative hold.

        Raises:
            ValidationError: If no fields (or unknown fields) are supplied
            NotFoundError: If the slot doesn't exist
            ConflictError: If the slot is held and the change would move or
                free it, or the new key collides with another slot
        """
        if not fields:
            raise ValidationError("No slot fields to update")
        unknown = set(fields) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown slot fields: {', '.join(sorted(unknown))}")

        record = db.get(SlotRecord, slot_id)
        if record is None:
            raise NotFoundError("Slot not found")

        current_key = (record.provider_id, record.date, record.time)
        new_key = (
            fields.get("provider_id", record.provider_id),
            fields.get("date", record.date),
            fields.get("time", record.time),
        )
        frees = fields.get("occupied") is False

        if self._is_referenced(db, *current_key) and (new_key != current_key or frees):
            raise ConflictError("The slot has an active appointment and cannot be changed")
        if new_key != current_key and self._is_referenced(db, *new_key):
            if frees:
                raise ConflictError("That time slot is already booked")
            fields = {**fields, "occupied": True}

        try:
            with db.begin_nested():
                for name, value in fields.items():
                    setattr(record, name, value)
                db.flush()
        except IntegrityError:
            db.refresh(record)
            raise ConflictError("Another slot already uses that time")

        logger.info("slot_updated", slot_id=slot_id, fields=sorted(fields))
        return Slot.model_validate(record)

    def edit_by_key(self, db: Session, provider_id: int, date: str, time: str, action: SlotAction) -> int:
        """
        Apply an administrative edit to the slot rows at (provider, date, time).

        Releasing or deleting a slot that an active appointment still
        references is refused.

        Returns:
            Number of rows affected

        Raises:
            ConflictError: Release or delete requested while an active appointment holds the slot
            NotFoundError: No slot registered at that key
        """
        action = SlotAction(action)

        if action == SlotAction.OCCUPY:
            affected = self.occupy(db, provider_id, date, time)
        elif action == SlotAction.RELEASE:
            if self._is_referenced(db, provider_id, date, time):
                raise ConflictError("The slot has an active appointment and cannot be released")
            affected = self.release(db, provider_id, date, time)
        else:
            if self._is_referenced(db, provider_id, date, time):
                raise ConflictError("The slot has an active appointment and cannot be deleted")
            affected = db.execute(
                delete(SlotRecord)
                .where(*self._key_filter(provider_id, date, time))
                .execution_options(synchronize_session=False)
            ).rowcount

        if affected == 0:
            raise NotFoundError("Slot not found")

        logger.info("slot_edited", action=action.value, provider_id=provider_id, date=date, time=time)
        return affected

    def _set_occupied(self, db: Session, provider_id: int, date: str, time: str, occupied: bool) -> int:
        result = db.execute(
            update(SlotRecord)
            .where(*self._key_filter(provider_id, date, time))
            .values(occupied=occupied)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def _key_filter(provider_id: int, date: str, time: str):
        return (
            SlotRecord.provider_id == provider_id,
            SlotRecord.date == date,
            SlotRecord.time == time,
        )

    @staticmethod
    def _is_referenced(db: Session, provider_id: int, date: str, time: str) -> bool:
        return bool(db.scalar(
            select(exists().where(
                AppointmentRecord.provider_id == provider_id,
                AppointmentRecord.date == date,
                AppointmentRecord.time == time,
                AppointmentRecord.status == AppointmentStatus.ACTIVE.value,
            ))
        ))
