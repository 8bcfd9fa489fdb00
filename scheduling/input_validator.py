"""Input parsing for identifiers, dates and times.

Requests carry identifiers and dates as loosely formatted strings. They are
parsed once, at ingress, into the typed values the stores work with.
"""
import re
from datetime import date, datetime
from typing import NewType, Union

from dateutil import parser as date_parser

from scheduling.errors import ValidationError
from scheduling.state import AppointmentStatus

PatientId = NewType("PatientId", int)
ProviderId = NewType("ProviderId", int)
SpecialtyId = NewType("SpecialtyId", int)
AppointmentId = NewType("AppointmentId", int)
SlotId = NewType("SlotId", int)


class InputValidator:
    """
    Validates and normalizes raw request values.

    Every method either returns a canonical value or raises ValidationError
    with a short message naming the offending field.
    """

    CANONICAL_DATE_PATTERN = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
    ISO_TIMESTAMP_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}T')
    TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')
    ID_PATTERN = re.compile(r'^\d+$')

    @staticmethod
    def parse_id(value: Union[int, str, None], field: str = "id") -> int:
        """
        Parse a positive integer identifier.

        Args:
            value: Raw identifier (int or numeric string)
            field: Field name used in the error message

        Returns:
            Identifier as int

        Raises:
            ValidationError: If missing, non-numeric or not positive
        """
        if isinstance(value, bool) or value is None:
            raise ValidationError(f"{field} is required")

        if isinstance(value, int):
            parsed = value
        else:
            text = str(value).strip()
            if not InputValidator.ID_PATTERN.match(text):
                raise ValidationError(f"{field} must be a positive integer")
            parsed = int(text)

        if parsed <= 0:
            raise ValidationError(f"{field} must be a positive integer")
        return parsed

    @staticmethod
    def normalize_date(value: Union[str, date, datetime, None], field: str = "date") -> str:
        """
        Normalize a date to YYYY-MM-DD.

        Accepts canonical strings, YYYY/MM/DD, ISO-8601 timestamps (the date
        part is kept), date/datetime objects and free-form strings. The same
        input always yields the same output.

        Raises:
            ValidationError: If the value cannot be read as a calendar date
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} is required")

        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()

        text = str(value).strip()
        if InputValidator.ISO_TIMESTAMP_PATTERN.match(text):
            text = text[:10]
        text = text.replace("/", "-")

        match = InputValidator.CANONICAL_DATE_PATTERN.match(text)
        if match:
            try:
                return date(int(match[1]), int(match[2]), int(match[3])).isoformat()
            except ValueError:
                raise ValidationError(f"Invalid {field}")

        try:
            # Fixed default keeps parsing independent of today's date
            parsed = date_parser.parse(text, default=datetime(2000, 1, 1))
        except (ValueError, OverflowError):
            raise ValidationError(f"Invalid {field} format. Use YYYY-MM-DD")
        return parsed.date().isoformat()

    @staticmethod
    def normalize_time(value: Union[str, None], field: str = "time") -> str:
        """
        Normalize a time of day to HH:MM.

        Accepts H:MM, HH:MM and HH:MM:SS (seconds are dropped).

        Raises:
            ValidationError: If the value is not a valid time of day
        """
        if value is None or not str(value).strip():
            raise ValidationError(f"{field} is required")

        match = InputValidator.TIME_PATTERN.match(str(value).strip())
        if not match:
            raise ValidationError(f"Invalid {field} format. Use HH:MM")

        hour, minute = int(match[1]), int(match[2])
        second = int(match[3]) if match[3] else 0
        if hour > 23 or minute > 59 or second > 59:
            raise ValidationError(f"Invalid {field}")

        return f"{hour:02d}:{minute:02d}"

    @staticmethod
    def parse_status(value: Union[str, AppointmentStatus, None], field: str = "status") -> AppointmentStatus:
        """Parse an appointment status ("active" or "cancelled")."""
        if value is None:
            raise ValidationError(f"{field} is required")
        try:
            return AppointmentStatus(str(getattr(value, "value", value)).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid {field}. Use active or cancelled")


def patient_id(value) -> PatientId:
    return PatientId(InputValidator.parse_id(value, "patient_id"))


def provider_id(value) -> ProviderId:
    return ProviderId(InputValidator.parse_id(value, "provider_id"))


def specialty_id(value) -> SpecialtyId:
    return SpecialtyId(InputValidator.parse_id(value, "specialty_id"))


def appointment_id(value) -> AppointmentId:
    return AppointmentId(InputValidator.parse_id(value, "appointment_id"))


def slot_id(value) -> SlotId:
    return SlotId(InputValidator.parse_id(value, "slot_id"))
