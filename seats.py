import logging
import re
from typing import List, Optional

from sqlalchemy.orm import Session

from errors import Conflict, ValidationError
from models import STATUS_CANCELLED, Reservation

logger = logging.getLogger(__name__)

SEAT_CODE_PATTERN = re.compile(r"^\d{1,3}[A-Z]$")


def normalize_seat_code(seat_code) -> str:
    if seat_code is None or not str(seat_code).strip():
        raise ValidationError("Seat is required.")
    code = str(seat_code).strip().upper()
    if not SEAT_CODE_PATTERN.match(code):
        raise ValidationError(f"Invalid seat code '{seat_code}'.")
    return code


def _active_on_flight(db: Session, flight_id: int, exclude_reservation_id: Optional[int]):
    query = db.query(Reservation).filter(
        Reservation.flight_id == flight_id,
        Reservation.status != STATUS_CANCELLED,
    )
    if exclude_reservation_id is not None:
        query = query.filter(Reservation.id != exclude_reservation_id)
    return query


def is_seat_free(
    db: Session,
    flight_id: int,
    seat_code: str,
    exclude_reservation_id: Optional[int] = None,
) -> bool:
    holder = (
        _active_on_flight(db, flight_id, exclude_reservation_id)
        .filter(Reservation.seat_code == seat_code)
        .first()
    )
    return holder is None


def ensure_seat_free(
    db: Session,
    flight_id: int,
    seat_code: str,
    exclude_reservation_id: Optional[int] = None,
):
    if not is_seat_free(db, flight_id, seat_code, exclude_reservation_id):
        logger.warning("Seat %s on flight %s is already held", seat_code, flight_id)
        raise Conflict(f"Seat {seat_code} is already booked. Please choose another.")


def occupied_seats(
    db: Session, flight_id: int, exclude_reservation_id: Optional[int] = None
) -> List[str]:
    rows = (
        _active_on_flight(db, flight_id, exclude_reservation_id)
        .with_entities(Reservation.seat_code)
        .order_by(Reservation.seat_code)
        .all()
    )
    return [row.seat_code for row in rows]


def active_seat_count(db: Session, flight_id: int) -> int:
    return _active_on_flight(db, flight_id, None).count()
