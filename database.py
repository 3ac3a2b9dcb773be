from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

Base = declarative_base()


def create_session_factory(db_url: str = DATABASE_URL, *, echo: bool = False):
    """Return an engine/session factory pair; SQLite gets cross-thread access."""
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    if db_url.endswith(":memory:"):
        engine = create_engine(
            db_url, echo=echo, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        engine = create_engine(db_url, echo=echo, connect_args=connect_args)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    return engine, factory


engine, SessionLocal = create_session_factory(DATABASE_URL)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _table_columns(conn, table_name: str) -> set:
    return {column["name"] for column in inspect(conn).get_columns(table_name)}


def _ensure_column(conn, table: str, column: str, ddl: str):
    columns = _table_columns(conn, table)
    if column not in columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {ddl}"))


def ensure_schema_migrations(bind=None):
    """
    ``create_all`` never alters tables that already exist. This helper adds
    the check-in columns to older reservation tables and makes sure the
    partial unique index guarding active seats is present.
    """
    import models

    bind = bind or engine
    with bind.begin() as conn:
        reservation_columns = {
            "checked_in": "checked_in BOOLEAN DEFAULT 0",
            "boarding_pass_no": "boarding_pass_no VARCHAR(32)",
            "updated_at": "updated_at DATETIME",
        }
        for name, ddl in reservation_columns.items():
            _ensure_column(conn, "reservations", name, ddl)

        models.ACTIVE_SEAT_INDEX.create(conn, checkfirst=True)
