import pytest

from errors import ValidationError
from pricing import (
    BAGGAGE_RATE_PER_KG,
    PREMIUM_SEAT_SURCHARGE,
    TAX_RATE,
    compute_bill,
    is_premium_seat,
    lookup_meal,
    seat_row,
)


@pytest.mark.parametrize("seat", ["1A", "2C", "3F", "4B"])
def test_premium_rows_carry_the_surcharge(seat):
    assert is_premium_seat(seat)
    bill = compute_bill(100.0, is_premium=is_premium_seat(seat))
    assert bill.seat_fee == PREMIUM_SEAT_SURCHARGE


@pytest.mark.parametrize("seat", ["5A", "10C", "14F", "40B", "C1", ""])
def test_other_rows_have_no_seat_fee(seat):
    assert not is_premium_seat(seat)
    assert compute_bill(100.0, is_premium=is_premium_seat(seat)).seat_fee == 0


def test_seat_row_reads_leading_number():
    assert seat_row("12C") == 12
    assert seat_row(" 3A") == 3
    assert seat_row("C12") == 0
    assert seat_row(None) == 0


def test_reference_fare():
    bill = compute_bill(100.0, is_premium=is_premium_seat("2A"), meal_price=15.0, baggage_kg=4)

    assert bill.seat_fee == 30
    assert bill.meal_fee == 15
    assert bill.baggage_fee == 20
    assert bill.subtotal == pytest.approx(165.0)
    assert bill.tax == pytest.approx(19.8)
    assert bill.total == pytest.approx(184.8)


@pytest.mark.parametrize(
    "base, premium, meal, kg",
    [(0, False, 0, 0), (249.99, True, 18.0, 23), (87.5, False, 10.0, 1), (1200, True, 0, 40)],
)
def test_bill_components_add_up(base, premium, meal, kg):
    bill = compute_bill(base, is_premium=premium, meal_price=meal, baggage_kg=kg)

    assert bill.baggage_fee == pytest.approx(kg * BAGGAGE_RATE_PER_KG)
    assert bill.subtotal == pytest.approx(
        bill.base_fare + bill.seat_fee + bill.meal_fee + bill.baggage_fee
    )
    assert bill.tax == pytest.approx(bill.subtotal * TAX_RATE, abs=0.005)
    assert bill.total == pytest.approx(bill.subtotal + bill.tax)


def test_recomputing_is_idempotent():
    first = compute_bill(310.0, is_premium=True, meal_price=20.0, baggage_kg=12)
    second = compute_bill(first.base_fare, is_premium=True, meal_price=20.0, baggage_kg=12)

    assert first == second


def test_missing_inputs_count_as_zero():
    bill = compute_bill(None, meal_price=None, baggage_kg=None)
    assert bill.total == 0


def test_meal_lookup():
    assert lookup_meal(None) == ("None", 0.0)
    assert lookup_meal("  ") == ("None", 0.0)
    assert lookup_meal("none") == ("None", 0.0)
    assert lookup_meal("vegetarian") == ("Vegetarian", 15.0)

    with pytest.raises(ValidationError):
        lookup_meal("Lobster")
