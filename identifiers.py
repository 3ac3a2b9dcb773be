"""Booking reference (PNR) and boarding-pass number generation.

Candidates are drawn at random and checked against the store. The unique
columns on ``reservations`` remain the real guarantee; callers treat a
duplicate on write as a reason to draw again.
"""
import logging
import random
import string
from typing import Callable, Optional

from sqlalchemy.orm import Session

import config
from errors import ExhaustedRetries
from models import Reservation

logger = logging.getLogger(__name__)

# No 0/O or 1/I so references read back unambiguously.
PNR_ALPHABET = "".join(c for c in string.ascii_uppercase if c not in "OI") + "23456789"
PNR_LENGTH = 6
BOARDING_PASS_DIGITS = 6

_rng = random.SystemRandom()


def random_pnr() -> str:
    return "".join(_rng.choices(PNR_ALPHABET, k=PNR_LENGTH))


def random_boarding_pass(flight_number: str) -> str:
    digits = "".join(_rng.choices(string.digits, k=BOARDING_PASS_DIGITS))
    return f"{flight_number.upper()}-{digits}"


def generate_unique(
    make_candidate: Callable[[], str],
    exists: Callable[[str], bool],
    *,
    max_attempts: Optional[int] = None,
    label: str = "identifier",
) -> str:
    attempts = max_attempts if max_attempts is not None else config.IDENTIFIER_MAX_ATTEMPTS
    for _ in range(attempts):
        candidate = make_candidate()
        if not exists(candidate):
            return candidate
        logger.warning("%s collision on %s, drawing again", label, candidate)
    raise ExhaustedRetries(f"Could not allocate a unique {label} after {attempts} attempts")


def generate_pnr(db: Session, *, max_attempts: Optional[int] = None) -> str:
    def exists(candidate: str) -> bool:
        return db.query(Reservation.id).filter(Reservation.pnr == candidate).first() is not None

    return generate_unique(random_pnr, exists, max_attempts=max_attempts, label="PNR")


def generate_boarding_pass(
    db: Session, flight_number: str, *, max_attempts: Optional[int] = None
) -> str:
    def exists(candidate: str) -> bool:
        return (
            db.query(Reservation.id)
            .filter(Reservation.boarding_pass_no == candidate)
            .first()
            is not None
        )

    return generate_unique(
        lambda: random_boarding_pass(flight_number),
        exists,
        max_attempts=max_attempts,
        label="boarding pass",
    )
