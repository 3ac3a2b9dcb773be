from concurrent.futures import ThreadPoolExecutor

import pytest

import config
import reservations
from database import SessionLocal
from errors import (
    AlreadyDone,
    Conflict,
    ExhaustedRetries,
    NotFound,
    Unauthorized,
    ValidationError,
)
from models import ROLE_ADMIN, STATUS_CANCELLED, Flight, Reservation
from reservations import (
    ANONYMOUS,
    AuthContext,
    amend_reservation,
    cancel_reservation,
    check_in,
    create_reservation,
    get_reservation,
    list_reservations,
    parse_baggage_kg,
)


def book(db, flight, passenger, seat="12C", ctx=ANONYMOUS, **extra):
    return create_reservation(
        db, ctx, flight_id=flight.id, passenger=passenger(), seat_code=seat, **extra
    )


class TestCreate:
    def test_bill_is_computed_from_flight_price(self, db, make_flight, passenger):
        flight = make_flight(price=100.0, seat_capacity=10)

        reservation = book(db, flight, passenger, seat="2a", meal_label="Vegetarian", baggage_kg="4")

        assert reservation.seat_code == "2A"
        assert reservation.seat_is_premium
        assert reservation.meal_label == "Vegetarian"
        assert reservation.baggage_kg == 4
        assert reservation.base_fare == 100.0
        assert reservation.subtotal == pytest.approx(165.0)
        assert reservation.tax == pytest.approx(19.8)
        assert reservation.total == pytest.approx(184.8)
        assert reservation.status == "booked"
        assert not reservation.checked_in
        assert len(reservation.pnr) == 6
        assert reservation.email == "noa.cohen@example.com"
        db.refresh(flight)
        assert flight.seats_available == 9

    def test_owner_comes_from_context(self, db, make_flight, make_user, passenger):
        user = make_user()
        flight = make_flight()

        reservation = book(db, flight, passenger, ctx=AuthContext(user_id=user.id))

        assert reservation.user_id == user.id

    def test_missing_passenger_fields(self, db, make_flight, passenger):
        flight = make_flight()
        with pytest.raises(ValidationError) as excinfo:
            create_reservation(
                db,
                ANONYMOUS,
                flight_id=flight.id,
                passenger=passenger(last_name=" ", passport=None),
                seat_code="12C",
            )
        assert "last_name" in excinfo.value.message
        assert "passport" in excinfo.value.message

    def test_missing_seat_or_flight(self, db, make_flight, passenger):
        flight = make_flight()
        with pytest.raises(ValidationError):
            book(db, flight, passenger, seat=None)
        with pytest.raises(ValidationError):
            create_reservation(db, ANONYMOUS, flight_id=None, passenger=passenger(), seat_code="1A")

    def test_unknown_flight(self, db, passenger):
        with pytest.raises(NotFound):
            create_reservation(db, ANONYMOUS, flight_id=999, passenger=passenger(), seat_code="1A")

    def test_seat_taken_on_same_flight(self, db, make_flight, passenger):
        flight = make_flight()
        book(db, flight, passenger, seat="12C")

        with pytest.raises(Conflict):
            book(db, flight, passenger, seat="12c")

    def test_same_seat_on_another_flight(self, db, make_flight, passenger):
        first = make_flight("FT100")
        second = make_flight("FT200")
        book(db, first, passenger, seat="12C")

        assert book(db, second, passenger, seat="12C").flight_id == second.id

    def test_sold_out_flight(self, db, make_flight, passenger):
        flight = make_flight(seat_capacity=1)
        book(db, flight, passenger, seat="1A")

        with pytest.raises(Conflict):
            book(db, flight, passenger, seat="1B")

    def test_storage_rejects_seat_race(self, db, make_flight, passenger, monkeypatch):
        flight = make_flight()
        book(db, flight, passenger, seat="12C")
        monkeypatch.setattr(reservations, "ensure_seat_free", lambda *args, **kwargs: None)

        with pytest.raises(Conflict):
            book(db, flight, passenger, seat="12C")
        assert db.query(Reservation).count() == 1
        db.refresh(flight)
        assert flight.seats_available == 9

    def test_pnr_collision_on_write_draws_again(self, db, make_flight, passenger, monkeypatch):
        flight = make_flight()
        existing = book(db, flight, passenger, seat="1A")
        candidates = iter([existing.pnr, "NEWPN2"])
        monkeypatch.setattr(reservations, "generate_pnr", lambda session: next(candidates))

        reservation = book(db, flight, passenger, seat="1B")

        assert reservation.pnr == "NEWPN2"

    def test_pnr_collisions_exhaust(self, db, make_flight, passenger, monkeypatch):
        flight = make_flight()
        existing = book(db, flight, passenger, seat="1A")
        monkeypatch.setattr(config, "IDENTIFIER_MAX_ATTEMPTS", 3)
        monkeypatch.setattr(reservations, "generate_pnr", lambda session: existing.pnr)

        with pytest.raises(ExhaustedRetries):
            book(db, flight, passenger, seat="1B")

    def test_concurrent_bookings_for_one_seat(self, make_flight, passenger):
        flight = make_flight(seat_capacity=50)
        flight_id = flight.id

        def attempt(index):
            with SessionLocal() as session:
                try:
                    create_reservation(
                        session,
                        ANONYMOUS,
                        flight_id=flight_id,
                        passenger=passenger(email=f"racer{index}@example.com"),
                        seat_code="3C",
                    )
                    return "booked"
                except Conflict:
                    return "conflict"

        with ThreadPoolExecutor(max_workers=5) as pool:
            outcomes = list(pool.map(attempt, range(5)))

        assert outcomes.count("booked") == 1
        assert outcomes.count("conflict") == 4


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 0), ("", 0), ("abc", 0), ("7", 7), ("7kg", 7), (" 12 ", 12), (9, 9), (4.8, 4)],
)
def test_parse_baggage(raw, expected):
    assert parse_baggage_kg(raw) == expected


def test_negative_baggage_is_rejected():
    with pytest.raises(ValidationError):
        parse_baggage_kg("-3")


class TestAmend:
    def test_adding_a_meal_charges_the_difference(self, db, make_flight, passenger):
        flight = make_flight(price=100.0)
        reservation = book(db, flight, passenger, seat="12C")

        result = amend_reservation(db, ANONYMOUS, reservation.id, meal_label="Chicken")

        assert result.reservation.meal_price == 18.0
        assert result.amount_due == pytest.approx(20.16)
        assert result.reservation.total == pytest.approx(132.16)

    def test_moving_to_a_premium_row(self, db, make_flight, passenger):
        flight = make_flight(price=100.0)
        reservation = book(db, flight, passenger, seat="12C")

        result = amend_reservation(db, ANONYMOUS, reservation.id, seat_code="1A", baggage_kg=2)

        assert result.reservation.seat_code == "1A"
        assert result.reservation.seat_is_premium
        assert result.amount_due == pytest.approx((30 + 10) * 1.12)

    def test_reductions_never_go_negative(self, db, make_flight, passenger):
        flight = make_flight(price=100.0)
        reservation = book(db, flight, passenger, seat="2C", meal_label="Fish", baggage_kg=10)
        old_total = reservation.total

        result = amend_reservation(
            db, ANONYMOUS, reservation.id, seat_code="20C", meal_label="None", baggage_kg=0
        )

        assert result.reservation.total < old_total
        assert result.amount_due == 0

    def test_unchanged_fields_stay(self, db, make_flight, passenger):
        flight = make_flight()
        reservation = book(db, flight, passenger, seat="12C", meal_label="Vegan", baggage_kg=3)

        result = amend_reservation(db, ANONYMOUS, reservation.id)

        assert result.reservation.seat_code == "12C"
        assert result.reservation.meal_label == "Vegan"
        assert result.reservation.baggage_kg == 3
        assert result.amount_due == 0

    def test_keeping_own_seat_is_not_a_conflict(self, db, make_flight, passenger):
        flight = make_flight()
        reservation = book(db, flight, passenger, seat="12C")

        result = amend_reservation(db, ANONYMOUS, reservation.id, seat_code="12c", baggage_kg=1)

        assert result.reservation.seat_code == "12C"

    def test_moving_to_a_held_seat(self, db, make_flight, passenger):
        flight = make_flight()
        book(db, flight, passenger, seat="5A")
        mine = book(db, flight, passenger, seat="5B")

        with pytest.raises(Conflict):
            amend_reservation(db, ANONYMOUS, mine.id, seat_code="5A")

    def test_base_fare_is_kept_from_booking(self, db, make_flight, passenger):
        flight = make_flight(price=100.0)
        reservation = book(db, flight, passenger, seat="12C")
        flight.price = 500.0
        db.commit()

        result = amend_reservation(db, ANONYMOUS, reservation.id, baggage_kg=1)

        assert result.reservation.base_fare == 100.0

    def test_cancelled_reservation_cannot_change(self, db, make_flight, passenger):
        flight = make_flight()
        reservation = book(db, flight, passenger)
        cancel_reservation(db, ANONYMOUS, reservation.id)

        with pytest.raises(Conflict):
            amend_reservation(db, ANONYMOUS, reservation.id, baggage_kg=5)

    def test_other_users_reservation(self, db, make_flight, make_user, passenger):
        owner = make_user("owner@example.com")
        stranger = make_user("stranger@example.com")
        flight = make_flight()
        reservation = book(db, flight, passenger, ctx=AuthContext(user_id=owner.id))

        with pytest.raises(Unauthorized) as excinfo:
            amend_reservation(db, AuthContext(user_id=stranger.id), reservation.id, baggage_kg=1)
        assert excinfo.value.status_code == 403

        admin = AuthContext(user_id=None, role=ROLE_ADMIN)
        assert amend_reservation(db, admin, reservation.id, baggage_kg=1).amount_due > 0

    def test_unknown_reservation(self, db):
        with pytest.raises(NotFound):
            amend_reservation(db, ANONYMOUS, 12345, baggage_kg=1)


class TestCancel:
    def test_cancel_frees_the_seat(self, db, make_flight, passenger):
        flight = make_flight(seat_capacity=10)
        reservation = book(db, flight, passenger, seat="4D")

        cancelled = cancel_reservation(db, ANONYMOUS, reservation.id)

        assert cancelled.status == STATUS_CANCELLED
        replacement = book(db, flight, passenger, seat="4D")
        assert replacement.status == "booked"
        db.refresh(flight)
        assert flight.seats_available == 9

    def test_cancel_twice_is_harmless(self, db, make_flight, passenger):
        flight = make_flight(seat_capacity=10)
        reservation = book(db, flight, passenger)

        cancel_reservation(db, ANONYMOUS, reservation.id)
        cancel_reservation(db, ANONYMOUS, reservation.id)

        db.refresh(flight)
        assert flight.seats_available == 10
        assert db.get(Reservation, reservation.id) is not None

    def test_cancel_checks_the_current_counter(self, db, make_flight, passenger):
        flight = make_flight(seat_capacity=3)
        reservation = book(db, flight, passenger)
        assert flight.seats_available == 2

        other = SessionLocal()
        try:
            other.query(Flight).filter(Flight.id == flight.id).update({"seats_available": 3})
            other.commit()
        finally:
            other.close()

        cancel_reservation(db, ANONYMOUS, reservation.id)

        db.refresh(flight)
        assert flight.seats_available == 3

    def test_cancel_requires_ownership(self, db, make_flight, make_user, passenger):
        owner = make_user("owner@example.com")
        flight = make_flight()
        reservation = book(db, flight, passenger, ctx=AuthContext(user_id=owner.id))

        with pytest.raises(Unauthorized):
            cancel_reservation(db, ANONYMOUS, reservation.id)


class TestCheckIn:
    def test_check_in_issues_boarding_pass(self, db, make_flight, passenger):
        flight = make_flight("LY315")
        reservation = book(db, flight, passenger)

        result = check_in(db, reservation.pnr.lower(), "COHEN")

        assert result.boarding_pass.startswith("LY315-")
        assert result.reservation.checked_in
        assert result.reservation.boarding_pass_no == result.boarding_pass

    def test_wrong_last_name(self, db, make_flight, passenger):
        reservation = book(db, make_flight(), passenger)

        with pytest.raises(Unauthorized) as excinfo:
            check_in(db, reservation.pnr, "Levi")
        assert excinfo.value.status_code == 401
        db.refresh(reservation)
        assert not reservation.checked_in

    def test_second_check_in_returns_same_pass(self, db, make_flight, passenger):
        reservation = book(db, make_flight(), passenger)
        first = check_in(db, reservation.pnr, "Cohen")

        with pytest.raises(AlreadyDone) as excinfo:
            check_in(db, reservation.pnr, "cohen")

        assert excinfo.value.boarding_pass == first.boarding_pass
        assert excinfo.value.seat == reservation.seat_code

    def test_unknown_pnr(self, db):
        with pytest.raises(NotFound):
            check_in(db, "ZZZZZZ", "Cohen")

    def test_required_fields(self, db):
        with pytest.raises(ValidationError):
            check_in(db, "", "Cohen")
        with pytest.raises(ValidationError):
            check_in(db, "ABCDEF", None)

    def test_cancelled_reservation(self, db, make_flight, passenger):
        reservation = book(db, make_flight(), passenger)
        cancel_reservation(db, ANONYMOUS, reservation.id)

        with pytest.raises(Conflict):
            check_in(db, reservation.pnr, "Cohen")

    def test_checked_in_reservation_cannot_be_amended(self, db, make_flight, passenger):
        reservation = book(db, make_flight(), passenger)
        check_in(db, reservation.pnr, "Cohen")

        with pytest.raises(Conflict):
            amend_reservation(db, ANONYMOUS, reservation.id, seat_code="20A")


def test_get_and_list_respect_ownership(db, make_flight, make_user, passenger):
    owner = make_user("owner@example.com")
    stranger = make_user("stranger@example.com")
    flight = make_flight()
    mine = book(db, flight, passenger, seat="1A", ctx=AuthContext(user_id=owner.id))
    book(db, flight, passenger, seat="1B")

    assert get_reservation(db, AuthContext(user_id=owner.id), mine.id).id == mine.id
    with pytest.raises(Unauthorized):
        get_reservation(db, AuthContext(user_id=stranger.id), mine.id)

    assert [r.id for r in list_reservations(db, AuthContext(user_id=owner.id))] == [mine.id]
    assert list_reservations(db, AuthContext(user_id=stranger.id)) == []
    with pytest.raises(Unauthorized):
        list_reservations(db, ANONYMOUS)


def test_seats_available_never_exceeds_capacity(db, make_flight, passenger):
    flight = make_flight(seat_capacity=3)
    reservation = book(db, flight, passenger)
    db.query(Flight).filter(Flight.id == flight.id).update({"seats_available": 3})
    db.commit()

    cancel_reservation(db, ANONYMOUS, reservation.id)

    db.refresh(flight)
    assert flight.seats_available == 3
