"""
Password hashing and bearer tokens for journal owners.

Tokens are HS256 JWTs whose subject is the username; the owner's id rides along
in the "uid" claim so log lines can name the owner without a lookup. The user
row is still loaded on every request, so a deleted account cannot keep acting
on a live token.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt

from app.config import settings

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    username: str
    user_id: uuid.UUID | None
    expires_at: datetime


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(
    username: str,
    user_id: uuid.UUID | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a bearer token for the given owner."""
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {"sub": username, "iat": now, "exp": expire}
    if user_id is not None:
        claims["uid"] = str(user_id)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> TokenClaims | None:
    """
    Verify signature and expiry and return the claims, or None when the token
    is unusable for any reason (bad signature, expired, missing subject).
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    username = payload.get("sub")
    if not username:
        return None

    user_id = None
    if payload.get("uid"):
        try:
            user_id = uuid.UUID(payload["uid"])
        except ValueError:
            return None

    return TokenClaims(
        username=username,
        user_id=user_id,
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
    )


def token_matches_user(claims: TokenClaims, user_id: uuid.UUID) -> bool:
    """False when the token was issued to an earlier account with the same username."""
    return claims.user_id is None or claims.user_id == user_id
