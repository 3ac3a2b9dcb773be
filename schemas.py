from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    confirm_password: Optional[str] = None


class UserLogin(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    role: str


class FlightIn(BaseModel):
    flight_number: str
    origin: str
    destination: str
    price: float
    seat_capacity: int
    seats_available: Optional[int] = None
    schedule: Optional[datetime] = None
    airline: Optional[str] = None
    aircraft_type: Optional[str] = None


class FlightUpdate(BaseModel):
    flight_number: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    price: Optional[float] = None
    seat_capacity: Optional[int] = None
    seats_available: Optional[int] = None
    schedule: Optional[datetime] = None
    airline: Optional[str] = None
    aircraft_type: Optional[str] = None


class FlightOut(BaseModel):
    id: int
    flight_number: str
    airline: Optional[str]
    origin: str
    destination: str
    schedule: Optional[datetime]
    aircraft_type: Optional[str]
    price: float
    seat_capacity: int
    seats_available: int


class FlightResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: FlightOut


class FlightListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[FlightOut] = Field(default_factory=list)


class SeatMapOut(BaseModel):
    success: bool = True
    flight: FlightOut
    occupied_seats: List[str] = Field(default_factory=list)
    premium_rows: List[int] = Field(default_factory=list)
    premium_surcharge: float


class MealOption(BaseModel):
    label: str
    price: float


class MealMenuResponse(BaseModel):
    success: bool = True
    meals: List[MealOption] = Field(default_factory=list)


class ReservationCreate(BaseModel):
    flight_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    passport: Optional[str] = None
    seat: Optional[str] = None
    meal: Optional[str] = Field(default=None, description="Meal label from /api/meals")
    baggage_kg: Optional[Union[int, float, str]] = None


class ReservationUpdate(BaseModel):
    seat: Optional[str] = None
    meal: Optional[str] = None
    baggage_kg: Optional[Union[int, float, str]] = None


class BillOut(BaseModel):
    base_fare: float
    seat_fee: float
    meal_fee: float
    baggage_fee: float
    subtotal: float
    tax: float
    total: float


class ReservationOut(BaseModel):
    id: int
    pnr: str
    status: str
    flight_id: int
    flight_number: Optional[str]
    user_id: Optional[int]
    first_name: str
    last_name: str
    email: str
    passport: str
    seat_code: str
    seat_is_premium: bool
    meal_label: str
    meal_price: float
    baggage_kg: int
    bill: BillOut
    checked_in: bool
    boarding_pass_no: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class ReservationResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    reservation: ReservationOut


class AmendmentResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    reservation: ReservationOut
    amount_due: float


class ReservationListResponse(BaseModel):
    success: bool = True
    count: int
    reservations: List[ReservationOut] = Field(default_factory=list)


class CancellationResponse(BaseModel):
    success: bool = True
    status: str
    message: str


class CheckInRequest(BaseModel):
    pnr: Optional[str] = None
    last_name: Optional[str] = None


class CheckInResponse(BaseModel):
    success: bool = True
    message: str
    pnr: str
    passenger_name: str
    seat: str
    boarding_pass: str
