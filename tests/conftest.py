import os
import tempfile
from datetime import datetime
from pathlib import Path

_DB_FILE = Path(tempfile.mkstemp(prefix="flights-test", suffix=".db")[1])
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["SEED_SAMPLE_DATA"] = "false"

import pytest

from database import Base, SessionLocal, engine
from models import ROLE_USER, Flight, User
from reservations import PassengerDetails


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_flight(db):
    def _make(
        flight_number="FT100",
        *,
        price=100.0,
        seat_capacity=10,
        seats_available=None,
        origin="TLV",
        destination="JFK",
        schedule=None,
    ):
        flight = Flight(
            flight_number=flight_number,
            airline="Test Air",
            origin=origin,
            destination=destination,
            schedule=schedule or datetime(2030, 5, 1, 9, 30),
            aircraft_type="A320",
            price=price,
            seat_capacity=seat_capacity,
            seats_available=seat_capacity if seats_available is None else seats_available,
        )
        db.add(flight)
        db.commit()
        db.refresh(flight)
        return flight

    return _make


@pytest.fixture
def make_user(db):
    def _make(email="traveler@example.com", *, role=ROLE_USER, password="secret",
              first_name="Dana", last_name="Levi"):
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def passenger():
    def _make(**overrides):
        values = {
            "first_name": "Noa",
            "last_name": "Cohen",
            "email": "Noa.Cohen@example.com",
            "passport": "P1234567",
        }
        values.update(overrides)
        return PassengerDetails(**values)

    return _make
