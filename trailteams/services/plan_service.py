"""
Plan-gated access control.

Plans are ordered gratis < basico < completo; a higher plan includes every
lower plan's pages. Administrators always have access.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.database.models import Profile, UserPlan

logger = logging.getLogger(__name__)

PLAN_HIERARCHY = {
    UserPlan.GRATIS.value: 0,
    UserPlan.BASICO.value: 1,
    UserPlan.COMPLETO.value: 2,
}

ALWAYS_ACCESSIBLE_PREFIXES = ["/resources", "/profile"]
COMPLETO_PREFIXES = ["/magnolias-hikes"]
BASICO_PAGES = ["/", "/training", "/teams", "/trails", "/gallery", "/insignias", "/dashboard"]


async def get_user_plan(session: AsyncSession, user_id: str) -> str:
    """The user's plan, defaulting to gratis when unset, unknown or unreadable."""
    try:
        result = await session.execute(select(Profile.user_plan).where(Profile.id == user_id))
        plan = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user plan for {user_id}: {e}")
        return UserPlan.GRATIS.value

    if plan not in PLAN_HIERARCHY:
        return UserPlan.GRATIS.value
    return plan


def has_plan_access(user_plan: Optional[str], required_plan: Optional[str], is_admin: bool = False) -> bool:
    if is_admin or required_plan is None:
        return True
    return PLAN_HIERARCHY.get(user_plan, 0) >= PLAN_HIERARCHY[required_plan]


def get_required_plan_for_page(path: str) -> Optional[str]:
    """
    Minimum plan for a page path, or None if the page is open to everyone.

    Examples:
        >>> get_required_plan_for_page("/magnolias-hikes/etapa-1")
        'completo'
        >>> get_required_plan_for_page("/teams/abc")
        'basico'
        >>> get_required_plan_for_page("/profile")
    """
    if any(path.startswith(prefix) for prefix in ALWAYS_ACCESSIBLE_PREFIXES):
        return None
    if any(path.startswith(prefix) for prefix in COMPLETO_PREFIXES):
        return UserPlan.COMPLETO.value
    if any(path == page or path.startswith(page + "/") for page in BASICO_PAGES):
        return UserPlan.BASICO.value
    return None


def can_access_page(user_plan: Optional[str], path: str, is_admin: bool = False) -> bool:
    return has_plan_access(user_plan, get_required_plan_for_page(path), is_admin)
