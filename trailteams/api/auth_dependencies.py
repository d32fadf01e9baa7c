"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from trailteams.services import auth_service, user_service
from trailteams.database.db import get_db_session

security = HTTPBearer()


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from the identity token.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        Dict with id, email, is_admin and the caller's profile

    Raises:
        HTTPException: If the token is invalid
    """
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    email = payload.get("email")
    metadata = payload.get("user_metadata") or {}
    profile = await user_service.get_or_create_profile(
        session, str(user_id), metadata.get("name") or (email.split("@")[0] if email else None)
    )

    return {
        "id": str(user_id),
        "email": email,
        "is_admin": auth_service.is_admin_email(email),
        "profile": profile,
    }


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require an administrator account."""
    if not user.get("is_admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
