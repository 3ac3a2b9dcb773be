import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.responses import Response
from itsdangerous import BadSignature, URLSafeSerializer
from sqlalchemy.orm import Session

from config import SECRET_KEY
from database import get_db, session_scope
from models import ROLE_ADMIN, ROLE_USER, User
from reservations import ANONYMOUS, AuthContext

logger = logging.getLogger(__name__)

# Sessions are signed, not encrypted, and passwords are compared as stored.
# Hardening either is outside what this service does.
serializer = URLSafeSerializer(SECRET_KEY)


def login_user(response: Response, user: User):
    """Sets a session cookie to log the user in."""
    session_data = serializer.dumps({"user_id": user.id})
    response.set_cookie(key="session", value=session_data, httponly=True)


def logout_user(response: Response):
    """Clears the session cookie to log the user out."""
    response.delete_cookie(key="session")


def get_current_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """Dependency to get the current user from the session cookie."""
    session_cookie = request.cookies.get("session")
    if not session_cookie:
        return None

    try:
        session_data = serializer.loads(session_cookie)
    except BadSignature:
        logger.warning("Rejected session cookie with a bad signature")
        return None
    user_id = session_data.get("user_id")
    if not user_id:
        return None
    return db.get(User, user_id)


def get_auth_context(current_user: Optional[User] = Depends(get_current_user)) -> AuthContext:
    """Resolve the caller into the explicit context the core operations take."""
    if current_user is None:
        return ANONYMOUS
    return AuthContext(user_id=current_user.id, role=current_user.role or ROLE_USER)


def create_initial_users():
    """Creates initial admin and user accounts if they don't exist."""
    with session_scope() as db:
        if db.query(User).count() > 0:
            return
        logger.info("Creating initial users...")
        db.add(
            User(
                first_name="Admin",
                last_name="User",
                email="admin@example.com",
                password="admin",
                role=ROLE_ADMIN,
            )
        )
        db.add(
            User(
                first_name="Test",
                last_name="User",
                email="user@example.com",
                password="user",
                role=ROLE_USER,
            )
        )
    logger.info("Initial users created.")
