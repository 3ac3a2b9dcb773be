from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from database import Base
from pricing import Bill

ROLE_ADMIN = "Admin"
ROLE_USER = "User"

STATUS_BOOKED = "booked"
STATUS_CANCELLED = "cancelled"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String)  # Stored as submitted; hashing is out of scope here.
    role = Column(String, default=ROLE_USER)  # 'User' or 'Admin'

    reservations = relationship("Reservation", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Flight(Base):
    __tablename__ = "flights"
    __table_args__ = (
        CheckConstraint("seat_capacity > 0", name="ck_seat_capacity_positive"),
        CheckConstraint("seats_available >= 0", name="ck_seats_available_non_negative"),
        CheckConstraint("seats_available <= seat_capacity", name="ck_seats_within_capacity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    flight_number = Column(String, unique=True, index=True, nullable=False)
    airline = Column(String, nullable=True)
    origin = Column(String, index=True, nullable=False)
    destination = Column(String, index=True, nullable=False)
    schedule = Column(DateTime, nullable=True)
    aircraft_type = Column(String, default="Not specified")
    price = Column(Float, default=0.0, nullable=False)
    seat_capacity = Column(Integer, default=100, nullable=False)
    seats_available = Column(Integer, default=100, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    reservations = relationship("Reservation", back_populates="flight")


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    flight_id = Column(Integer, ForeignKey("flights.id"), nullable=False, index=True)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    passport = Column(String, nullable=False)

    seat_code = Column(String(8), nullable=False)
    seat_is_premium = Column(Boolean, default=False)
    meal_label = Column(String, default="None")
    meal_price = Column(Float, default=0.0)
    baggage_kg = Column(Integer, default=0)

    base_fare = Column(Float, default=0.0)
    seat_fee = Column(Float, default=0.0)
    meal_fee = Column(Float, default=0.0)
    baggage_fee = Column(Float, default=0.0)
    subtotal = Column(Float, default=0.0)
    tax = Column(Float, default=0.0)
    total = Column(Float, default=0.0)

    status = Column(String, default=STATUS_BOOKED, nullable=False)  # booked, cancelled
    pnr = Column(String(16), unique=True, index=True, nullable=False)
    checked_in = Column(Boolean, default=False, nullable=False)
    boarding_pass_no = Column(String(32), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="reservations")
    flight = relationship("Flight", back_populates="reservations")

    @property
    def is_active(self) -> bool:
        return self.status != STATUS_CANCELLED

    @property
    def bill(self) -> Bill:
        return Bill(
            base_fare=self.base_fare or 0.0,
            seat_fee=self.seat_fee or 0.0,
            meal_fee=self.meal_fee or 0.0,
            baggage_fee=self.baggage_fee or 0.0,
            subtotal=self.subtotal or 0.0,
            tax=self.tax or 0.0,
            total=self.total or 0.0,
        )

    def apply_bill(self, bill: Bill):
        self.base_fare = bill.base_fare
        self.seat_fee = bill.seat_fee
        self.meal_fee = bill.meal_fee
        self.baggage_fee = bill.baggage_fee
        self.subtotal = bill.subtotal
        self.tax = bill.tax
        self.total = bill.total


# At most one active reservation per (flight, seat). Cancelled rows keep their
# seat code but drop out of the index.
ACTIVE_SEAT_INDEX = Index(
    "uq_reservation_active_seat",
    Reservation.flight_id,
    Reservation.seat_code,
    unique=True,
    sqlite_where=text("status != 'cancelled'"),
    postgresql_where=text("status != 'cancelled'"),
)
