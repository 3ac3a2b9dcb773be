import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import flights as flight_store
import reservations as lifecycle
from config import CORS_ORIGINS, SEED_SAMPLE_DATA, configure_logging
from database import Base, SessionLocal, engine, ensure_schema_migrations, get_db
from errors import ReservationError, ServerError, ValidationError
from models import ROLE_ADMIN, ROLE_USER, Flight, Reservation, User
from pricing import MEAL_MENU, PREMIUM_SEAT_SURCHARGE
from schemas import (
    AmendmentResponse,
    BillOut,
    CancellationResponse,
    CheckInRequest,
    CheckInResponse,
    FlightIn,
    FlightListResponse,
    FlightOut,
    FlightResponse,
    FlightUpdate,
    MealMenuResponse,
    MealOption,
    ReservationCreate,
    ReservationListResponse,
    ReservationOut,
    ReservationResponse,
    ReservationUpdate,
    SeatMapOut,
    UserCreate,
    UserLogin,
    UserOut,
)

configure_logging()
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)
ensure_schema_migrations()

app = FastAPI(title="Flight Booking - Reservations")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

#
# Error translation
#


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationError("; ".join(problems) or None).payload(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=ServerError().payload())


def serialize_flight(flight: Flight) -> FlightOut:
    return FlightOut(
        id=flight.id,
        flight_number=flight.flight_number,
        airline=flight.airline,
        origin=flight.origin,
        destination=flight.destination,
        schedule=flight.schedule,
        aircraft_type=flight.aircraft_type,
        price=flight.price,
        seat_capacity=flight.seat_capacity,
        seats_available=flight.seats_available,
    )


def serialize_reservation(reservation: Reservation) -> ReservationOut:
    return ReservationOut(
        id=reservation.id,
        pnr=reservation.pnr,
        status=reservation.status,
        flight_id=reservation.flight_id,
        flight_number=reservation.flight.flight_number if reservation.flight else None,
        user_id=reservation.user_id,
        first_name=reservation.first_name,
        last_name=reservation.last_name,
        email=reservation.email,
        passport=reservation.passport,
        seat_code=reservation.seat_code,
        seat_is_premium=bool(reservation.seat_is_premium),
        meal_label=reservation.meal_label or "None",
        meal_price=reservation.meal_price or 0.0,
        baggage_kg=reservation.baggage_kg or 0,
        bill=BillOut(**reservation.bill.as_dict()),
        checked_in=bool(reservation.checked_in),
        boarding_pass_no=reservation.boarding_pass_no,
        created_at=reservation.created_at,
        updated_at=reservation.updated_at,
    )


def serialize_user(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        role=user.role,
    )


#
# Authentication Endpoints
#


@app.post("/api/signup", response_model=UserOut)
def signup(user: UserCreate, response: Response, db: Session = Depends(get_db)):
    if user.confirm_password is not None and user.password != user.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    email = user.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="Email already exists")

    new_user = User(
        first_name=user.first_name.strip(),
        last_name=user.last_name.strip(),
        email=email,
        password=user.password,
        role=ROLE_USER,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    auth.login_user(response, new_user)
    return serialize_user(new_user)


@app.post("/api/login")
def login(credentials: UserLogin, response: Response, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == credentials.email.strip().lower()).first()
    if not user or user.password != credentials.password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    auth.login_user(response, user)
    return {"success": True, "message": "Login successful"}


@app.post("/api/logout")
def logout(response: Response):
    auth.logout_user(response)
    return {"success": True, "message": "Logout successful"}


@app.get("/api/users/me", response_model=UserOut)
def read_users_me(current_user: Optional[User] = Depends(auth.get_current_user)):
    if not current_user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return serialize_user(current_user)


#
# Flight Endpoints
#


@app.get("/api/meals", response_model=MealMenuResponse)
def meal_menu():
    return MealMenuResponse(
        meals=[MealOption(label=label, price=price) for label, price in MEAL_MENU.items()]
    )


@app.get("/api/flights/search", response_model=FlightListResponse)
def search_flights(
    origin: Optional[str] = Query(None, description="Origin airport code e.g. TLV"),
    destination: Optional[str] = Query(None, description="Destination airport code"),
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    departure_date = None
    if date:
        try:
            departure_date = datetime.strptime(date, "%Y-%m-%d")
        except ValueError:
            raise ValidationError("Invalid date format, expected YYYY-MM-DD")
    found = flight_store.search_flights(
        db, origin=origin, destination=destination, departure_date=departure_date
    )
    return FlightListResponse(count=len(found), data=[serialize_flight(f) for f in found])


@app.get("/api/flights", response_model=FlightListResponse)
def all_flights(
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    ctx.require_admin()
    found = flight_store.list_flights(db)
    return FlightListResponse(count=len(found), data=[serialize_flight(f) for f in found])


@app.post("/api/flights", response_model=FlightResponse, status_code=status.HTTP_201_CREATED)
def create_flight(
    payload: FlightIn,
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    flight = flight_store.create_flight(db, ctx, **payload.model_dump())
    return FlightResponse(message="Flight created successfully.", data=serialize_flight(flight))


@app.put("/api/flights/{flight_id}", response_model=FlightResponse)
def update_flight(
    flight_id: int,
    payload: FlightUpdate,
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    flight = flight_store.update_flight(db, ctx, flight_id, **payload.model_dump(exclude_unset=True))
    return FlightResponse(message="Flight updated successfully.", data=serialize_flight(flight))


@app.get("/api/flights/{flight_id}", response_model=FlightResponse)
def flight_detail(flight_id: int, db: Session = Depends(get_db)):
    return FlightResponse(data=serialize_flight(flight_store.get_flight(db, flight_id)))


@app.get("/api/flights/{flight_number}/seats", response_model=SeatMapOut)
def seat_map(flight_number: str, db: Session = Depends(get_db)):
    seats = flight_store.seat_map(db, flight_number)
    return SeatMapOut(
        flight=serialize_flight(seats["flight"]),
        occupied_seats=seats["occupied_seats"],
        premium_rows=seats["premium_rows"],
        premium_surcharge=PREMIUM_SEAT_SURCHARGE,
    )


#
# Reservation Endpoints
#


@app.post(
    "/api/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_reservation(
    payload: ReservationCreate,
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    reservation = lifecycle.create_reservation(
        db,
        ctx,
        flight_id=payload.flight_id,
        passenger=lifecycle.PassengerDetails(
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            passport=payload.passport,
        ),
        seat_code=payload.seat,
        meal_label=payload.meal,
        baggage_kg=payload.baggage_kg,
    )
    return ReservationResponse(
        message="Reservation created.", reservation=serialize_reservation(reservation)
    )


@app.get("/api/reservations", response_model=ReservationListResponse)
def my_reservations(
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    found = lifecycle.list_reservations(db, ctx)
    return ReservationListResponse(
        count=len(found), reservations=[serialize_reservation(r) for r in found]
    )


@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse)
def reservation_detail(
    reservation_id: int,
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    reservation = lifecycle.get_reservation(db, ctx, reservation_id)
    return ReservationResponse(reservation=serialize_reservation(reservation))


@app.put("/api/reservations/{reservation_id}", response_model=AmendmentResponse)
def amend_reservation(
    reservation_id: int,
    payload: ReservationUpdate,
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    result = lifecycle.amend_reservation(
        db,
        ctx,
        reservation_id,
        seat_code=payload.seat,
        meal_label=payload.meal,
        baggage_kg=payload.baggage_kg,
    )
    return AmendmentResponse(
        message="Reservation updated.",
        reservation=serialize_reservation(result.reservation),
        amount_due=result.amount_due,
    )


@app.post("/api/reservations/{reservation_id}/cancel", response_model=CancellationResponse)
def cancel_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    ctx: lifecycle.AuthContext = Depends(auth.get_auth_context),
):
    reservation = lifecycle.cancel_reservation(db, ctx, reservation_id)
    return CancellationResponse(status=reservation.status, message="Reservation cancelled")


@app.post("/api/checkin", response_model=CheckInResponse)
def check_in(payload: CheckInRequest, db: Session = Depends(get_db)):
    result = lifecycle.check_in(db, payload.pnr, payload.last_name)
    reservation = result.reservation
    return CheckInResponse(
        message="Check-in successful!",
        pnr=reservation.pnr,
        passenger_name=f"{reservation.first_name} {reservation.last_name}",
        seat=reservation.seat_code,
        boarding_pass=result.boarding_pass,
    )


#
# Startup
#

SAMPLE_FLIGHTS = [
    ("LY001", "El Al", "TLV", "JFK", 1, 650.0, 180, "B787"),
    ("LY315", "El Al", "TLV", "LHR", 1, 320.0, 150, "B737"),
    ("BA164", "British Airways", "LHR", "TLV", 2, 300.0, 150, "A320"),
    ("AF1621", "Air France", "CDG", "TLV", 2, 280.0, 120, "A320"),
    ("UA91", "United", "JFK", "TLV", 3, 700.0, 200, "B787"),
]


def seed_database_if_empty():
    db = SessionLocal()
    try:
        if db.query(Flight).count() > 0:
            logger.info("Database already seeded with flights.")
        else:
            logger.info("Database is empty, seeding with initial flight data...")
            system = lifecycle.AuthContext(role=ROLE_ADMIN)
            start = datetime.utcnow().replace(minute=0, second=0, microsecond=0)
            for number, airline, origin, destination, days, price, seats, aircraft in SAMPLE_FLIGHTS:
                flight_store.create_flight(
                    db,
                    system,
                    flight_number=number,
                    airline=airline,
                    origin=origin,
                    destination=destination,
                    schedule=start + timedelta(days=days),
                    price=price,
                    seat_capacity=seats,
                    aircraft_type=aircraft,
                )
            logger.info("Database flight seeding complete.")
    finally:
        db.close()

    auth.create_initial_users()


@app.on_event("startup")
def seed_on_startup():
    if SEED_SAMPLE_DATA:
        seed_database_if_empty()
