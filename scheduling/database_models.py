"""SQLAlchemy database models for slots and appointments."""
from datetime import datetime, UTC

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base

from scheduling.state import AppointmentStatus

Base = declarative_base()

ACTIVE_ONLY = text("status = 'active'")


def utc_now():
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class SlotRecord(Base):
    """A registered time unit in a provider's daily schedule."""
    __tablename__ = "provider_slots"
    __table_args__ = (
        UniqueConstraint("provider_id", "specialty_id", "date", "time", name="uq_slot_key"),
        Index("ix_slot_provider_day", "provider_id", "date", "time"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, nullable=False)
    specialty_id = Column(Integer, nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    time = Column(String(5), nullable=False)  # HH:MM
    occupied = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return (
            f"<SlotRecord(id={self.id}, provider={self.provider_id}, "
            f"{self.date} {self.time}, occupied={self.occupied})>"
        )


class AppointmentRecord(Base):
    """Appointment ledger table. Rows are never deleted; cancellation is a status."""
    __tablename__ = "appointments"
    __table_args__ = (
        # Ordinal is unique per patient
        UniqueConstraint("patient_id", "ordinal", name="uq_appointment_patient_ordinal"),
        # At most one active appointment per provider slot
        Index(
            "uq_appointment_active_slot",
            "provider_id",
            "date",
            "time",
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=ACTIVE_ONLY,
        ),
        Index("ix_appointment_patient", "patient_id", "id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, nullable=False)
    provider_id = Column(Integer, nullable=False)
    specialty_id = Column(Integer, nullable=False)
    date = Column(String(10), nullable=False, index=True)
    time = Column(String(5), nullable=False)
    ordinal = Column(Integer, nullable=False)
    status = Column(String(16), default=AppointmentStatus.ACTIVE.value, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return (
            f"<AppointmentRecord(id={self.id}, patient={self.patient_id}, "
            f"ordinal={self.ordinal}, status={self.status})>"
        )
