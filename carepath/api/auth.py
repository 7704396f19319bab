"""
Authentication Dependencies

Requests arrive through the identity-provider gateway, which forwards a
shared bearer token and the authenticated user's id in X-User-Id. Token
issuance stays with the identity provider.
"""
import logging
import os
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from carepath.database import get_db
from carepath.errors import ForbiddenError, UnauthorizedError
from carepath.models import User

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

API_TOKEN = os.getenv("CAREPATH_API_TOKEN", "demo_token_12345")


def verify_token(credentials: Optional[HTTPAuthorizationCredentials]) -> bool:
    """
    Verify the gateway bearer token.

    Raises:
        UnauthorizedError: header missing or token does not match
    """
    if credentials is None:
        raise UnauthorizedError("Authorization header missing")

    if credentials.credentials != API_TOKEN:
        logger.warning(f"Invalid token attempt: {credentials.credentials[:10]}...")
        raise UnauthorizedError("Invalid or expired token")

    return True


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_user_id: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the authenticated user forwarded by the gateway."""
    verify_token(credentials)

    if not x_user_id:
        raise UnauthorizedError("Not authenticated")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise UnauthorizedError("Not authenticated")

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning(f"Rejected request for unknown or inactive user {x_user_id}")
        raise UnauthorizedError("Not authenticated")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise ForbiddenError("Admin access required")
    return user


async def require_patient(user: User = Depends(get_current_user)) -> User:
    if user.role != "patient":
        raise ForbiddenError("Access denied. Patient role required.")
    return user
