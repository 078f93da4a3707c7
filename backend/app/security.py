from __future__ import annotations

import datetime as dt

import jwt
import bcrypt

from app.config import access_token_ttl_minutes, bcrypt_rounds, jwt_secret


def hash_password(password: str) -> str:
    # bcrypt stores algorithm + cost + salt in the resulting hash string.
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=bcrypt_rounds())
    return bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Invalid hash format.
        return False


def create_access_token(*, user_id: int, role: str, ttl_minutes: int | None = None) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    minutes = access_token_ttl_minutes() if ttl_minutes is None else int(ttl_minutes)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + dt.timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, jwt_secret(), algorithm="HS256")


def decode_access_token(token: str) -> dict:
    """Raises jwt.PyJWTError (incl. ExpiredSignatureError) on a bad or stale token."""
    return jwt.decode(token, jwt_secret(), algorithms=["HS256"])
