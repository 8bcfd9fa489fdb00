"""API package initialization."""
from scheduling.api.models import BookingRequest, BookingResponse, ErrorResponse

__all__ = ["BookingRequest", "BookingResponse", "ErrorResponse"]
