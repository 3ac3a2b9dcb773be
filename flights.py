"""Flight store operations used by the admin screens and the search page."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import Duplicate, NotFound, ValidationError
from models import Flight
from pricing import PREMIUM_ROWS
from reservations import AuthContext
from seats import active_seat_count, occupied_seats

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "flight_number",
    "airline",
    "origin",
    "destination",
    "schedule",
    "aircraft_type",
    "price",
    "seat_capacity",
    "seats_available",
)
_REQUIRED_FIELDS = ("flight_number", "origin", "destination", "price", "seat_capacity")


def _as_number(value, name: str, *, minimum: float, cast=float):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number.")
    if number < minimum:
        qualifier = "a positive number" if minimum > 0 else "zero or a positive number"
        raise ValidationError(f"{name} must be {qualifier}.")
    return number


def _validated(changes: dict) -> dict:
    cleaned = dict(changes)
    for field in ("flight_number", "origin", "destination"):
        if cleaned.get(field) is not None:
            cleaned[field] = str(cleaned[field]).strip().upper()
    blank = [name for name in _REQUIRED_FIELDS if name in cleaned and cleaned[name] in (None, "")]
    if blank:
        raise ValidationError(
            "Flight number, origin, destination, price and seat capacity are required."
        )
    if "price" in cleaned:
        cleaned["price"] = _as_number(cleaned["price"], "Price", minimum=0)
    if "seat_capacity" in cleaned:
        cleaned["seat_capacity"] = _as_number(
            cleaned["seat_capacity"], "Seat capacity", minimum=1, cast=int
        )
    if cleaned.get("seats_available") is not None:
        cleaned["seats_available"] = _as_number(
            cleaned["seats_available"], "Seats available", minimum=0, cast=int
        )
    return cleaned


def _check_capacity(values: dict):
    if values["seats_available"] > values["seat_capacity"]:
        raise ValidationError("Seats available cannot exceed seat capacity.")


def _commit(db: Session, flight: Flight) -> Flight:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        detail = str(exc.orig).lower()
        if "unique" in detail and "flight_number" in detail:
            raise Duplicate("Duplicate key error: Flight number already exists.") from exc
        raise ValidationError("Flight violates a data constraint.") from exc
    db.refresh(flight)
    return flight


def create_flight(
    db: Session,
    ctx: AuthContext,
    *,
    flight_number: str,
    origin: str,
    destination: str,
    price: float,
    seat_capacity: int,
    seats_available: Optional[int] = None,
    schedule: Optional[datetime] = None,
    airline: Optional[str] = None,
    aircraft_type: Optional[str] = None,
) -> Flight:
    ctx.require_admin()
    values = _validated(
        {
            "flight_number": flight_number,
            "origin": origin,
            "destination": destination,
            "price": price,
            "seat_capacity": seat_capacity,
            "seats_available": seats_available,
        }
    )
    if values["seats_available"] is None:
        values["seats_available"] = values["seat_capacity"]
    _check_capacity(values)

    flight = Flight(
        schedule=schedule,
        airline=airline,
        aircraft_type=aircraft_type or "Not specified",
        **values,
    )
    db.add(flight)
    flight = _commit(db, flight)
    logger.info("Created flight %s %s->%s", flight.flight_number, flight.origin, flight.destination)
    return flight


def update_flight(db: Session, ctx: AuthContext, flight_id: int, **changes) -> Flight:
    """Apply admin edits to a flight.

    Seats held by active reservations stay counted against capacity: a new
    capacity without an explicit availability leaves ``capacity - held`` seats
    open, and neither value may be set so that held seats would be resold.
    """
    ctx.require_admin()
    flight = get_flight(db, flight_id)

    unknown = set(changes) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown flight fields: {', '.join(sorted(unknown))}.")
    changes = _validated(changes)
    if "seats_available" in changes and changes["seats_available"] is None:
        del changes["seats_available"]

    if "seat_capacity" in changes or "seats_available" in changes:
        held = active_seat_count(db, flight.id)
        capacity = changes.get("seat_capacity", flight.seat_capacity)
        if capacity < held:
            raise ValidationError(
                f"Seat capacity cannot be lower than the {held} seats already booked."
            )
        if "seats_available" not in changes:
            changes["seats_available"] = capacity - held
        _check_capacity({"seat_capacity": capacity, "seats_available": changes["seats_available"]})
        if changes["seats_available"] > capacity - held:
            raise ValidationError(
                f"Seats available cannot exceed the {capacity - held} seats not yet booked."
            )

    for key, value in changes.items():
        setattr(flight, key, value)
    flight = _commit(db, flight)
    logger.info("Updated flight %s", flight.flight_number)
    return flight

def get_flight(db: Session, flight_id: int) -> Flight:
    flight = db.get(Flight, flight_id)
    if not flight:
        raise NotFound(f"Flight not found with ID: {flight_id}")
    return flight


def get_flight_by_number(db: Session, flight_number: str) -> Flight:
    flight = (
        db.query(Flight)
        .filter(Flight.flight_number == str(flight_number).strip().upper())
        .first()
    )
    if not flight:
        raise NotFound("Flight not found")
    return flight


def list_flights(db: Session) -> List[Flight]:
    return db.query(Flight).order_by(Flight.schedule, Flight.flight_number).all()


def search_flights(
    db: Session,
    *,
    origin: Optional[str] = None,
    destination: Optional[str] = None,
    departure_date: Optional[datetime] = None,
) -> List[Flight]:
    query = db.query(Flight)
    if origin:
        query = query.filter(Flight.origin == origin.strip().upper())
    if destination:
        query = query.filter(Flight.destination == destination.strip().upper())
    if departure_date:
        start = departure_date.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1)
        query = query.filter(Flight.schedule >= start, Flight.schedule < end)
    return query.order_by(Flight.schedule).all()


def seat_map(db: Session, flight_number: str) -> dict:
    flight = get_flight_by_number(db, flight_number)
    return {
        "flight": flight,
        "occupied_seats": occupied_seats(db, flight.id),
        "premium_rows": sorted(PREMIUM_ROWS),
    }
