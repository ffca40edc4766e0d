"""
Authentication dependency for owner-scoped routes.

Every capture, evidence and job route depends on get_current_user; the user it
returns is the owner id stamped on every insert and every read filter.
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_app_db
from app.db_handlers.user import UserDBHandler
from app.exceptions import Unauthorized
from app.models import User
from app.utils.auth import decode_access_token, token_matches_user
from app.utils.logger import setup_logger

logger = setup_logger("dependencies.auth")

# auto_error=False so a missing header is a 401 Unauthorized, not FastAPI's 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_app_db),
) -> User:
    """Resolve the bearer token to a user row or raise Unauthorized."""
    if credentials is None:
        raise Unauthorized("Not authenticated")

    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise Unauthorized("Could not validate credentials")

    user = await UserDBHandler().get_user_by_username(claims.username, db=db)
    if user is None:
        logger.info(f"Token for unknown user '{claims.username}' rejected")
        raise Unauthorized("User not found")
    if not token_matches_user(claims, user.id):
        # Username was re-registered after the token was issued
        logger.warning(f"Token uid mismatch for user '{claims.username}'")
        raise Unauthorized("Could not validate credentials")

    return user
