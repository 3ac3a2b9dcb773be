"""Failure classes raised by the reservation engine.

Each class carries the HTTP status the API boundary answers with, so handlers
in ``main`` can translate any of them into a ``{"success": false}`` payload.
"""
from typing import Optional


class ReservationError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def payload(self) -> dict:
        return {"success": False, "message": self.message}


class ValidationError(ReservationError):
    """Missing or malformed input; the caller must resubmit."""

    status_code = 400
    default_message = "Missing required fields."


class NotFound(ReservationError):
    status_code = 404
    default_message = "Not found"


class Conflict(ReservationError):
    """A seat is already held by an active reservation."""

    status_code = 409
    default_message = "Seat is already booked. Please choose another."


class Duplicate(ReservationError):
    """Unique-constraint violation on a PNR, boarding pass or flight number."""

    status_code = 409
    default_message = "Duplicate record"


class Unauthorized(ReservationError):
    status_code = 401
    default_message = "Not authorized"


class AlreadyDone(ReservationError):
    status_code = 409
    default_message = "Passenger is already checked in"

    def __init__(self, message: Optional[str] = None, *, boarding_pass: Optional[str] = None,
                 seat: Optional[str] = None):
        super().__init__(message)
        self.boarding_pass = boarding_pass
        self.seat = seat

    def payload(self) -> dict:
        data = super().payload()
        data["boarding_pass"] = self.boarding_pass
        data["seat"] = self.seat
        return data


class ExhaustedRetries(ReservationError):
    """No unique identifier could be drawn within the retry bound."""

    status_code = 503
    default_message = "Could not allocate a unique identifier"


class ServerError(ReservationError):
    status_code = 500
    default_message = "Server error"
