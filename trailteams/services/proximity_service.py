"""
Proximity discovery: nearby users and joinable teams around a coordinate.

Distances are great-circle miles (haversine), filtered in Python against
the radius, sorted ascending and reported rounded to two decimals.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.database.models import Profile, Team, TeamMember, TeamRole
from trailteams.services import team_service
from trailteams.services.errors import PreconditionMissingError
from trailteams.services.privileged_service import PrivilegedGateway, PrivilegedStatus
from trailteams.utils.constants import DEFAULT_SEARCH_RADIUS_MILES
from trailteams.utils.geo_utils import calculate_distance_miles, validate_coordinates

logger = logging.getLogger(__name__)

LOCATION_REQUIRED_MESSAGE = "Configura tu ubicación para buscar compañeros cercanos"


def _require_coordinates(latitude: Optional[float], longitude: Optional[float]) -> None:
    if latitude is None or longitude is None:
        raise PreconditionMissingError(LOCATION_REQUIRED_MESSAGE)
    validate_coordinates(latitude, longitude)


async def _profiles_within_radius(
    session: AsyncSession,
    user_id: str,
    latitude: float,
    longitude: float,
    radius_miles: float,
) -> List[tuple]:
    """(profile, distance) pairs within the radius, excluding the caller, nearest first."""
    result = await session.execute(
        select(Profile).where(
            Profile.id != user_id,
            Profile.latitude.isnot(None),
            Profile.longitude.isnot(None),
        )
    )
    nearby = []
    for profile in result.scalars().all():
        dist = calculate_distance_miles(latitude, longitude, profile.latitude, profile.longitude)
        if dist <= radius_miles:
            nearby.append((profile, dist))
    nearby.sort(key=lambda pair: (pair[1], pair[0].name or ""))
    return nearby


async def _get_team_memberships(
    session: AsyncSession, user_ids: List[str], gateway: Optional[PrivilegedGateway]
) -> Dict[str, Dict]:
    """
    Map user_id -> team info for the given users.

    Prefers the privileged bulk function; falls back to a direct query; if
    both fail the users are returned without team info.
    """
    if not user_ids:
        return {}

    if gateway is not None:
        result = await gateway.get_user_team_memberships(session, user_ids)
        if result.status == PrivilegedStatus.OK:
            return {
                row["user_id"]: {
                    "team_id": row["team_id"],
                    "team_name": team_service.team_display_name(row["team_id"], row.get("team_name")),
                    "is_team_leader": row.get("role") == TeamRole.LEADER.value,
                    "team_max_members": team_service.effective_capacity(row.get("max_members")),
                }
                for row in result.value or []
            }
        if result.status == PrivilegedStatus.ERROR:
            logger.warning(f"Privileged team membership lookup failed: {result.reason}")

    try:
        async with session.begin_nested():
            rows = await session.execute(
                select(TeamMember.user_id, TeamMember.role, Team.id, Team.name, Team.max_members)
                .join(Team, Team.id == TeamMember.team_id)
                .where(TeamMember.user_id.in_(user_ids))
            )
            memberships = rows.all()
    except SQLAlchemyError as e:
        logger.warning(f"Team membership lookup failed, omitting team info: {e}")
        return {}

    return {
        row.user_id: {
            "team_id": row.id,
            "team_name": team_service.team_display_name(row.id, row.name),
            "is_team_leader": row.role == TeamRole.LEADER.value,
            "team_max_members": team_service.effective_capacity(row.max_members),
        }
        for row in memberships
    }


async def find_nearby_users(
    session: AsyncSession,
    user_id: str,
    latitude: Optional[float],
    longitude: Optional[float],
    radius_miles: float = DEFAULT_SEARCH_RADIUS_MILES,
    gateway: Optional[PrivilegedGateway] = None,
) -> List[Dict]:
    """
    Users within radius_miles of (latitude, longitude), nearest first.

    Raises:
        PreconditionMissingError: The reference coordinates are missing
        ValueError: Coordinates out of range
    """
    _require_coordinates(latitude, longitude)

    nearby = await _profiles_within_radius(session, user_id, latitude, longitude, radius_miles)
    teams = await _get_team_memberships(session, [p.id for p, _ in nearby], gateway)

    users = []
    for profile, dist in nearby:
        team_info = teams.get(profile.id, {})
        users.append({
            "id": profile.id,
            "name": profile.name,
            "location": profile.location,
            "avatar_url": profile.avatar_url,
            "latitude": profile.latitude,
            "longitude": profile.longitude,
            "distance_miles": round(dist, 2),
            "team_id": team_info.get("team_id"),
            "team_name": team_info.get("team_name"),
            "is_team_leader": team_info.get("is_team_leader", False),
            "team_max_members": team_info.get("team_max_members"),
        })
    return users


async def find_available_teams(
    session: AsyncSession,
    user_id: str,
    latitude: Optional[float],
    longitude: Optional[float],
    radius_miles: float = DEFAULT_SEARCH_RADIUS_MILES,
) -> List[Dict]:
    """
    Teams with at least one member within the radius that still have room.

    Teams the caller already belongs to are excluded. Each team's distance
    is the distance to its nearest member.

    Raises:
        PreconditionMissingError: The reference coordinates are missing
    """
    _require_coordinates(latitude, longitude)

    nearby = await _profiles_within_radius(session, user_id, latitude, longitude, radius_miles)
    if not nearby:
        return []
    distance_by_user = {profile.id: dist for profile, dist in nearby}

    membership_rows = await session.execute(
        select(TeamMember.team_id, TeamMember.user_id).where(
            TeamMember.user_id.in_(list(distance_by_user))
        )
    )
    nearest: Dict[str, float] = {}
    for row in membership_rows.all():
        dist = distance_by_user[row.user_id]
        if row.team_id not in nearest or dist < nearest[row.team_id]:
            nearest[row.team_id] = dist

    # Admin adds can leave the caller in more than one team
    own_rows = await session.execute(
        select(TeamMember.team_id).where(TeamMember.user_id == user_id)
    )
    for own_team_id in own_rows.scalars().all():
        nearest.pop(own_team_id, None)
    if not nearest:
        return []

    teams_result = await session.execute(select(Team).where(Team.id.in_(list(nearest))))
    count_result = await session.execute(
        select(TeamMember.team_id, func.count(TeamMember.id))
        .where(TeamMember.team_id.in_(list(nearest)))
        .group_by(TeamMember.team_id)
    )
    counts = {team_id: count for team_id, count in count_result.all()}

    available = []
    for team in teams_result.scalars().all():
        count = counts.get(team.id, 0)
        cap = team_service.effective_capacity(team.max_members)
        if count >= cap:
            continue
        available.append({
            "id": team.id,
            "name": team.name,
            "display_name": team_service.team_display_name(team.id, team.name),
            "avatar_url": team.avatar_url,
            "member_count": count,
            "effective_capacity": cap,
            "capacity_label": team_service.capacity_label(count, team.max_members),
            "distance_miles": round(nearest[team.id], 2),
        })

    available.sort(key=lambda t: (t["distance_miles"], t["display_name"]))
    return available
