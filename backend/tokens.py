"""
backend/tokens.py -- Password hashing and signed session tokens for the local backend.

Only backend/local.py uses this module. A hosted backend issues its own
tokens; the application treats every access token as opaque.

Security design decisions:
  JWT: python-jose with HS256, signed with SECRET_KEY. Tokens carry the user
       id (sub), email, a random session id (jti) and expiry. The jti is
       stored server-side so sign-out can revoke a token before it expires.
       Verification returns None on any failure.

  Passwords: bcrypt directly (no passlib wrapper). _DUMMY_HASH enables timing
       equalization so response time does not reveal whether an email is
       registered.

Layer rule: imports core/ only.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than later ones. Always verify against it when the email is unknown.
_DUMMY_HASH: str = hash_password("skillink_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run one bcrypt verification against the dummy hash (timing equalization)."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def new_session_id() -> str:
    return secrets.token_hex(16)


def create_access_token(user_id: str, email: str, session_id: str, expire_seconds: int = 0) -> tuple[str, int]:
    """Encode a signed session token. Returns (token, expires_at unix timestamp)."""
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": user_id,
        "email": email,
        "jti": session_id,
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM), int(expire.timestamp())


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a session token. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not all(k in payload for k in ("sub", "email", "jti")):
        return None
    return payload
