"""Reservation lifecycle: booking, amendment, cancellation and check-in.

Every operation takes an explicit :class:`AuthContext` describing the caller
instead of reading session state. Seat exclusivity and identifier uniqueness
are enforced by the database (see ``models.ACTIVE_SEAT_INDEX`` and the unique
columns); the lookups done here only give an early, readable rejection.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
from errors import (
    AlreadyDone,
    Conflict,
    Duplicate,
    ExhaustedRetries,
    NotFound,
    Unauthorized,
    ValidationError,
)
from identifiers import generate_boarding_pass, generate_pnr
from models import ROLE_ADMIN, ROLE_USER, STATUS_BOOKED, STATUS_CANCELLED, Flight, Reservation
from pricing import compute_bill, is_premium_seat, lookup_meal
from seats import ensure_seat_free, normalize_seat_code

logger = logging.getLogger(__name__)

_SEAT_MARKERS = ("uq_reservation_active_seat", "reservations.seat_code")
_PNR_MARKERS = ("ix_reservations_pnr", "reservations.pnr")
_BOARDING_PASS_MARKERS = ("reservations_boarding_pass_no_key", "reservations.boarding_pass_no")
_SOLD_OUT_MARKERS = ("ck_seats_available_non_negative",)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class AuthContext:
    user_id: Optional[int] = None
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def can_access(self, reservation: Reservation) -> bool:
        if self.is_admin or reservation.user_id is None:
            return True
        return self.user_id is not None and reservation.user_id == self.user_id

    def require_admin(self):
        if not self.is_admin:
            raise Unauthorized("Access denied: Admins only", status_code=403)


ANONYMOUS = AuthContext()


@dataclass
class PassengerDetails:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    passport: Optional[str] = None

    def cleaned(self) -> "PassengerDetails":
        values = {
            name: (str(value).strip() if value is not None else "")
            for name, value in vars(self).items()
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}.")
        values["email"] = values["email"].lower()
        return PassengerDetails(**values)


@dataclass
class AmendmentResult:
    reservation: Reservation
    amount_due: float


@dataclass
class CheckInResult:
    reservation: Reservation
    boarding_pass: str


def parse_baggage_kg(value) -> int:
    """Whole kilograms from user input; absent or non-numeric input is 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        kg = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        kg = int(match.group(1)) if match else 0
    if kg < 0:
        raise ValidationError("Baggage weight cannot be negative.")
    return kg


def _violated(exc: IntegrityError, markers) -> bool:
    detail = str(exc.orig).lower()
    return any(marker in detail for marker in markers)


def _recompute_bill(reservation: Reservation):
    reservation.apply_bill(
        compute_bill(
            reservation.base_fare,
            is_premium=bool(reservation.seat_is_premium),
            meal_price=reservation.meal_price,
            baggage_kg=reservation.baggage_kg,
        )
    )


def _load(db: Session, ctx: AuthContext, reservation_id: int) -> Reservation:
    reservation = db.get(Reservation, reservation_id)
    if not reservation:
        raise NotFound("Reservation not found")
    if not ctx.can_access(reservation):
        raise Unauthorized("Access unauthorized", status_code=403)
    return reservation


def create_reservation(
    db: Session,
    ctx: AuthContext,
    *,
    flight_id: Optional[int],
    passenger: PassengerDetails,
    seat_code: Optional[str],
    meal_label: Optional[str] = None,
    baggage_kg=None,
) -> Reservation:
    passenger = passenger.cleaned()
    if flight_id is None:
        raise ValidationError("Missing required fields: flight_id.")
    code = normalize_seat_code(seat_code)
    meal_name, meal_price = lookup_meal(meal_label)
    kg = parse_baggage_kg(baggage_kg)

    flight = db.get(Flight, flight_id)
    if not flight:
        raise NotFound("Flight not found.")
    if flight.seats_available <= 0:
        raise Conflict(f"Flight {flight.flight_number} is sold out.")
    ensure_seat_free(db, flight.id, code)

    for _ in range(config.IDENTIFIER_MAX_ATTEMPTS):
        reservation = Reservation(
            flight_id=flight.id,
            user_id=ctx.user_id,
            first_name=passenger.first_name,
            last_name=passenger.last_name,
            email=passenger.email,
            passport=passenger.passport,
            seat_code=code,
            seat_is_premium=is_premium_seat(code),
            meal_label=meal_name,
            meal_price=meal_price,
            baggage_kg=kg,
            base_fare=flight.price,
            status=STATUS_BOOKED,
            checked_in=False,
            pnr=generate_pnr(db),
        )
        _recompute_bill(reservation)
        flight.seats_available = Flight.seats_available - 1
        db.add(reservation)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _violated(exc, _SEAT_MARKERS):
                logger.warning("Seat %s on flight %s taken concurrently", code, flight_id)
                raise Conflict(f"Seat {code} is already booked. Please choose another.") from exc
            if _violated(exc, _SOLD_OUT_MARKERS):
                raise Conflict("Flight is sold out.") from exc
            if _violated(exc, _PNR_MARKERS):
                logger.warning("PNR %s collided on write, retrying", reservation.pnr)
                continue
            raise Duplicate("Reservation violates a uniqueness constraint.") from exc
        db.refresh(reservation)
        logger.info(
            "Booked seat %s on flight %s as %s (total %.2f)",
            code, flight_id, reservation.pnr, reservation.total,
        )
        return reservation
    raise ExhaustedRetries("Could not allocate a unique PNR")


def amend_reservation(
    db: Session,
    ctx: AuthContext,
    reservation_id: int,
    *,
    seat_code: Optional[str] = None,
    meal_label: Optional[str] = None,
    baggage_kg=None,
) -> AmendmentResult:
    reservation = _load(db, ctx, reservation_id)
    if reservation.status == STATUS_CANCELLED:
        raise Conflict("Cancelled reservations cannot be amended.")
    if reservation.checked_in:
        raise Conflict("Checked-in reservations cannot be amended.")

    new_code = None
    if seat_code is not None:
        new_code = normalize_seat_code(seat_code)
        if new_code != reservation.seat_code:
            ensure_seat_free(db, reservation.flight_id, new_code, reservation.id)
    meal = lookup_meal(meal_label) if meal_label is not None else None
    kg = parse_baggage_kg(baggage_kg) if baggage_kg is not None else None

    old_total = reservation.total or 0.0

    if new_code is not None:
        reservation.seat_code = new_code
        reservation.seat_is_premium = is_premium_seat(new_code)
    if meal is not None:
        reservation.meal_label, reservation.meal_price = meal
    if kg is not None:
        reservation.baggage_kg = kg

    _recompute_bill(reservation)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _violated(exc, _SEAT_MARKERS):
            raise Conflict(f"Seat {new_code} is already booked. Please choose another.") from exc
        raise Duplicate("Reservation violates a uniqueness constraint.") from exc
    db.refresh(reservation)

    amount_due = max(0.0, round(reservation.total - old_total, 2))
    logger.info("Amended reservation %s, amount due %.2f", reservation.pnr, amount_due)
    return AmendmentResult(reservation=reservation, amount_due=amount_due)


def cancel_reservation(db: Session, ctx: AuthContext, reservation_id: int) -> Reservation:
    reservation = _load(db, ctx, reservation_id)
    if reservation.status == STATUS_CANCELLED:
        return reservation

    reservation.status = STATUS_CANCELLED
    db.execute(
        update(Flight)
        .where(
            Flight.id == reservation.flight_id,
            Flight.seats_available < Flight.seat_capacity,
        )
        .values(seats_available=Flight.seats_available + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(reservation)
    logger.info("Cancelled reservation %s, seat %s released", reservation.pnr, reservation.seat_code)
    return reservation


def check_in(db: Session, pnr: Optional[str], last_name: Optional[str]) -> CheckInResult:
    if not pnr or not str(pnr).strip() or not last_name or not str(last_name).strip():
        raise ValidationError("PNR and Last Name are required")

    reservation = (
        db.query(Reservation).filter(Reservation.pnr == str(pnr).strip().upper()).first()
    )
    if not reservation:
        raise NotFound("Invalid PNR")
    if reservation.last_name.casefold() != str(last_name).strip().casefold():
        raise Unauthorized("Last name does not match the reservation")
    if reservation.status == STATUS_CANCELLED:
        raise Conflict("Reservation has been cancelled")
    if reservation.checked_in:
        raise AlreadyDone(boarding_pass=reservation.boarding_pass_no, seat=reservation.seat_code)

    flight_number = reservation.flight.flight_number
    for _ in range(config.IDENTIFIER_MAX_ATTEMPTS):
        boarding_pass = generate_boarding_pass(db, flight_number)
        try:
            result = db.execute(
                update(Reservation)
                .where(Reservation.id == reservation.id, Reservation.checked_in.is_(False))
                .values(checked_in=True, boarding_pass_no=boarding_pass)
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _violated(exc, _BOARDING_PASS_MARKERS):
                logger.warning("Boarding pass %s collided on write, retrying", boarding_pass)
                continue
            raise Duplicate("Boarding pass violates a uniqueness constraint.") from exc

        db.refresh(reservation)
        if updated == 0:
            raise AlreadyDone(boarding_pass=reservation.boarding_pass_no, seat=reservation.seat_code)
        logger.info("Checked in %s with boarding pass %s", reservation.pnr, boarding_pass)
        return CheckInResult(reservation=reservation, boarding_pass=boarding_pass)
    raise ExhaustedRetries("Could not allocate a unique boarding pass")


def get_reservation(db: Session, ctx: AuthContext, reservation_id: int) -> Reservation:
    return _load(db, ctx, reservation_id)


def list_reservations(db: Session, ctx: AuthContext) -> List[Reservation]:
    if ctx.user_id is None:
        raise Unauthorized("Not authenticated")
    return (
        db.query(Reservation)
        .filter(Reservation.user_id == ctx.user_id)
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .all()
    )
