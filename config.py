import logging
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./flights.db")
SECRET_KEY = os.getenv("SECRET_KEY", "a-very-secret-key-that-should-be-in-an-env-file")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
IDENTIFIER_MAX_ATTEMPTS = int(os.getenv("IDENTIFIER_MAX_ATTEMPTS", "25"))
SEED_SAMPLE_DATA = os.getenv("SEED_SAMPLE_DATA", "true").lower() in {"1", "true", "yes"}
CORS_ORIGINS = [
    origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
]


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
