"""
Identity token verification.

Accounts live in the external identity provider; this service only
verifies the bearer JWTs it issues (``sub`` = profile id, ``email``) and
decides who is an administrator.
"""

import os
import logging
from datetime import timedelta
from typing import Optional, Dict

import jwt

from trailteams.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("AUTH_JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE", "authenticated")
ACCESS_TOKEN_EXPIRE_MINUTES = 60


def get_admin_emails() -> set:
    """Lower-cased administrator emails from ADMIN_EMAILS (comma-separated)."""
    raw = os.getenv("ADMIN_EMAILS", "")
    return {email.strip().lower() for email in raw.split(",") if email.strip()}


def is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in get_admin_emails()


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    Used by local tooling and tests; production tokens come from the
    identity provider with the same claims.
    """
    payload = dict(data)
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload.update({"exp": expire, "iat": utcnow(), "aud": JWT_AUDIENCE})
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify a bearer token.

    Returns:
        Decoded payload, or None if the token is invalid or expired
    """
    if not token or not token.strip():
        return None
    try:
        return jwt.decode(
            token,
            JWT_SECRET_KEY,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected invalid token: {e}")
        return None
