"""
User service layer for profile database operations.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from trailteams.database.models import Profile, UserPlan
from trailteams.services.errors import NotFoundError
from trailteams.utils.datetime_utils import utcnow
from trailteams.utils.geo_utils import validate_coordinates
import logging

logger = logging.getLogger(__name__)


async def get_profile_by_id(session: AsyncSession, user_id: str) -> Optional[Dict]:
    """
    Get a profile by ID.

    Args:
        session: Database session
        user_id: Profile ID (identity provider subject)

    Returns:
        Profile dictionary or None if not found
    """
    result = await session.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    return _profile_to_dict(profile) if profile else None


async def get_or_create_profile(
    session: AsyncSession, user_id: str, name: Optional[str] = None
) -> Dict:
    """
    Get a profile, creating an empty one on first sign-in.

    The identity provider owns the account; the profile row is created
    lazily the first time a verified token for a new subject is seen.

    Args:
        session: Database session
        user_id: Profile ID (identity provider subject)
        name: Display name to seed a new profile with

    Returns:
        Profile dictionary
    """
    existing = await get_profile_by_id(session, user_id)
    if existing:
        return existing

    profile = Profile(
        id=user_id,
        name=(name or "").strip() or "Caminante",
        user_plan=UserPlan.GRATIS.value,
    )
    session.add(profile)
    await session.flush()
    await session.refresh(profile)
    logger.info(f"Created profile for new user {user_id}")
    return _profile_to_dict(profile)


async def update_location(
    session: AsyncSession,
    user_id: str,
    latitude: Optional[float],
    longitude: Optional[float],
    location: Optional[str] = None,
) -> Dict:
    """
    Set or clear a profile's coordinates.

    Args:
        session: Database session
        user_id: Profile ID
        latitude: Latitude in degrees, or None to clear
        longitude: Longitude in degrees, or None to clear
        location: Optional free-text area name

    Returns:
        Updated profile dictionary

    Raises:
        ValueError: If only one coordinate is given or a value is out of range
        NotFoundError: If the profile does not exist
    """
    validate_coordinates(latitude, longitude)

    profile = await session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("Usuario no encontrado")

    profile.latitude = latitude
    profile.longitude = longitude
    if location is not None:
        profile.location = location.strip() or None
    profile.updated_at = utcnow()
    await session.flush()
    await session.refresh(profile)
    return _profile_to_dict(profile)


def _profile_to_dict(profile: Profile) -> Dict:
    """
    Convert a Profile ORM instance to a dictionary (owner's view).

    Args:
        profile: Profile ORM instance

    Returns:
        Profile dictionary
    """
    return {
        "id": profile.id,
        "name": profile.name,
        "location": profile.location,
        "address": profile.address,
        "latitude": profile.latitude,
        "longitude": profile.longitude,
        "avatar_url": profile.avatar_url,
        "phone_number": profile.phone_number,
        "start_date": profile.start_date.isoformat() if profile.start_date else None,
        "user_plan": profile.user_plan or UserPlan.GRATIS.value,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
        "updated_at": profile.updated_at.isoformat() if profile.updated_at else None,
    }
