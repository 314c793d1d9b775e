import logging

from sqlalchemy import select
from sqlalchemy.engine import Connection

from backend.access import Principal
from backend.db import users
from backend.errors import UnauthorizedError
from backend.schemas import LoginPayload, LoginResponse
from backend.security import generate_token, verify_password, verify_token
from backend.users import PUBLIC_COLUMNS, find_user_by_email, to_response

logger = logging.getLogger(__name__)


def login(conn: Connection, payload: LoginPayload) -> LoginResponse:
    row = find_user_by_email(conn, payload.email)
    # unknown email and wrong password answer the same way
    if not row or not verify_password(payload.password, row["password_hash"]):
        logger.info("Failed login attempt for %s", payload.email)
        raise UnauthorizedError("Invalid credentials.")
    if row["status"] != "ACTIVE":
        logger.info("Login refused for inactive user %s", row["id"])
        raise UnauthorizedError("Account is inactive.")
    logger.info("User %s logged in", row["id"])
    return LoginResponse(token=generate_token(row["id"]), user=to_response(row))


def authenticate(conn: Connection, token: str | None):
    """Resolve a token to an active user row, raising UnauthorizedError otherwise."""
    if not token:
        raise UnauthorizedError("Authentication required.")
    user_id = verify_token(token)
    if not user_id:
        raise UnauthorizedError("Invalid or expired token.")
    row = conn.execute(select(*PUBLIC_COLUMNS).where(users.c.id == user_id)).mappings().first()
    if not row:
        raise UnauthorizedError("User no longer exists.")
    if row["status"] != "ACTIVE":
        raise UnauthorizedError("Account is inactive.")
    return row


def principal_for(row) -> Principal:
    return Principal(user_id=row["id"], role=row["role"])
