"""Fare calculation for reservations.

The bill is always derived from the reservation's seat, meal and baggage
fields plus the base fare captured at booking time. ``compute_bill`` is pure:
the lifecycle manager calls it right before every write, so recomputing with
unchanged inputs always lands on the same figures.
"""
import re
from dataclasses import asdict, dataclass
from typing import Optional, Tuple

from errors import ValidationError

PREMIUM_ROWS = frozenset({1, 2, 3, 4})
PREMIUM_SEAT_SURCHARGE = 30.0
BAGGAGE_RATE_PER_KG = 5.0
TAX_RATE = 0.12

NO_MEAL = "None"
MEAL_MENU = {
    NO_MEAL: 0.0,
    "Vegetarian": 15.0,
    "Vegan": 15.0,
    "Chicken": 18.0,
    "Fish": 20.0,
    "Kosher": 20.0,
    "Child": 10.0,
}

_ROW_PATTERN = re.compile(r"^\d+")


@dataclass(frozen=True)
class Bill:
    base_fare: float
    seat_fee: float
    meal_fee: float
    baggage_fee: float
    subtotal: float
    tax: float
    total: float

    def as_dict(self) -> dict:
        return asdict(self)


def _money(value: float) -> float:
    return round(float(value), 2)


def seat_row(seat_code: Optional[str]) -> int:
    """Leading row number of a seat code, 0 when there is none."""
    if not isinstance(seat_code, str):
        return 0
    match = _ROW_PATTERN.match(seat_code.strip())
    return int(match.group(0)) if match else 0


def is_premium_seat(seat_code: Optional[str]) -> bool:
    return seat_row(seat_code) in PREMIUM_ROWS


def lookup_meal(label: Optional[str]) -> Tuple[str, float]:
    """Resolve a meal label against the menu, case-insensitively."""
    if label is None or not str(label).strip():
        return NO_MEAL, 0.0
    wanted = str(label).strip().lower()
    for name, price in MEAL_MENU.items():
        if name.lower() == wanted:
            return name, price
    raise ValidationError(f"Unknown meal option '{label}'.")


def compute_bill(
    base_fare: float,
    *,
    is_premium: bool = False,
    meal_price: float = 0.0,
    baggage_kg: int = 0,
) -> Bill:
    base_fare = _money(base_fare or 0.0)
    seat_fee = PREMIUM_SEAT_SURCHARGE if is_premium else 0.0
    meal_fee = _money(meal_price or 0.0)
    baggage_fee = _money((baggage_kg or 0) * BAGGAGE_RATE_PER_KG)

    subtotal = _money(base_fare + seat_fee + meal_fee + baggage_fee)
    tax = _money(subtotal * TAX_RATE)
    return Bill(
        base_fare=base_fare,
        seat_fee=seat_fee,
        meal_fee=meal_fee,
        baggage_fee=baggage_fee,
        subtotal=subtotal,
        tax=tax,
        total=_money(subtotal + tax),
    )
