import logging
import os

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
TOKEN_MAX_AGE_SECONDS = int(os.getenv("TOKEN_MAX_AGE_SECONDS", str(7 * 24 * 60 * 60)))
TOKEN_SALT = "dash-finance-auth"
COOKIE_NAME = "token"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed.")
        return False


def _serializer(secret_key: str | None = None) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key or SECRET_KEY, salt=TOKEN_SALT)


def generate_token(user_id: str, secret_key: str | None = None) -> str:
    return _serializer(secret_key).dumps({"user_id": user_id})


def verify_token(
    token: str, secret_key: str | None = None, max_age: int | None = None
) -> str | None:
    """Return the user id carried by a token, or None when it is invalid or expired."""
    try:
        payload = _serializer(secret_key).loads(
            token, max_age=max_age if max_age is not None else TOKEN_MAX_AGE_SECONDS
        )
    except SignatureExpired:
        logger.info("Rejected expired auth token.")
        return None
    except BadSignature:
        logger.info("Rejected auth token with bad signature.")
        return None
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("user_id")
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id


def extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
