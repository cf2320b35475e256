"""
JWT creation and verification for session management.

Sessions are identified by a short-lived JWT stored in an HttpOnly cookie
(set in auth router). The token carries the user id and role; the role is
re-read from the database on each request, the claim is informational for
the frontend.
"""
from datetime import datetime, timedelta, UTC

from jose import jwt

from config import JWT_SECRET, JWT_ALGORITHM, JWT_COOKIE_MAX_AGE


def create_session_token(user_id: str, role: str = "member") -> str:
    """Session JWT for a user id (Google sub); exp = now + JWT_COOKIE_MAX_AGE."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(seconds=JWT_COOKIE_MAX_AGE),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """Decode and verify a session JWT; raises JWTError if invalid or expired."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
