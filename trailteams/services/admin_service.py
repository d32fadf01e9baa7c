"""
Admin aggregation: per-user and per-team points and distance rollups.

Every read has two paths. The privileged function is tried first and any
problem with it is logged and ignored; the direct query is the fallback
and its failure is raised as UpstreamFailureError. A missing email only
degrades that user's email field to the placeholder.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.database.models import (
    Profile,
    Team,
    TeamMember,
    UserPlan,
    WalkCompletion,
    PhaseUnlock,
    TrailCompletion,
    BookCompletion,
    MagnoliasHikeCompletion,
)
from trailteams.services import scoring_service, team_service
from trailteams.services.errors import NotFoundError, UpstreamFailureError
from trailteams.services.privileged_service import PrivilegedGateway, PrivilegedStatus
from trailteams.utils.constants import EMAIL_PLACEHOLDER

logger = logging.getLogger(__name__)

# Completion collection key -> model
COMPLETION_MODELS = {
    "walks": WalkCompletion,
    "phases": PhaseUnlock,
    "trails": TrailCompletion,
    "books": BookCompletion,
    "hikes": MagnoliasHikeCompletion,
}


def _row_to_dict(obj) -> Dict[str, Any]:
    return {column.key: getattr(obj, column.key) for column in obj.__table__.columns}


def _empty_completions() -> Dict[str, List[Dict]]:
    return {key: [] for key in COMPLETION_MODELS}


def _score(completions: Dict[str, List[Dict]]) -> Dict[str, float]:
    return {
        "total_points": scoring_service.calculate_total_points(
            completions["walks"],
            completions["phases"],
            completions["trails"],
            completions["books"],
            completions["hikes"],
        ),
        "total_km": scoring_service.total_km(completions["walks"]),
    }


def _parse_completions(value: Any) -> Optional[Dict[str, List[Dict]]]:
    """Validate the privileged completions payload; None when malformed."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    if not isinstance(value, dict):
        return None
    parsed = _empty_completions()
    for key in COMPLETION_MODELS:
        rows = value.get(key) or []
        if not isinstance(rows, list):
            return None
        parsed[key] = [row for row in rows if isinstance(row, dict)]
    return parsed


async def _fetch_completions_direct(
    session: AsyncSession, user_ids: Iterable[str]
) -> Dict[str, Dict[str, List[Dict]]]:
    """
    Fallback: one IN query per completion type, grouped by user.

    Raises:
        UpstreamFailureError: Any of the queries failed
    """
    user_ids = list(user_ids)
    grouped = {user_id: _empty_completions() for user_id in user_ids}
    if not user_ids:
        return grouped
    try:
        for key, model in COMPLETION_MODELS.items():
            result = await session.execute(select(model).where(model.user_id.in_(user_ids)))
            for row in result.scalars().all():
                grouped[row.user_id][key].append(_row_to_dict(row))
    except SQLAlchemyError as e:
        logger.error(f"Error fetching completions: {e}")
        raise UpstreamFailureError(f"No se pudieron cargar las actividades: {e}")
    return grouped


async def _resolve_email(
    session: AsyncSession, gateway: PrivilegedGateway, user_id: str
) -> str:
    """Best-effort email lookup. Never raises."""
    try:
        result = await gateway.get_user_email(session, user_id)
    except Exception as e:
        logger.warning(f"Email lookup failed for user {user_id}: {e}")
        return EMAIL_PLACEHOLDER

    if result.status == PrivilegedStatus.OK and result.value:
        return result.value
    if result.status == PrivilegedStatus.ERROR:
        logger.warning(f"Email lookup failed for user {user_id}: {result.reason}")
    return EMAIL_PLACEHOLDER


async def _get_all_profiles(session: AsyncSession, gateway: PrivilegedGateway) -> List[Dict]:
    """All profiles, newest first. Privileged path first, direct query second."""
    result = await gateway.get_all_profiles(session)
    if result.status == PrivilegedStatus.OK:
        if isinstance(result.value, list) and result.value:
            return result.value
        logger.warning("admin_get_all_profiles returned no rows, using direct query")
    elif result.status == PrivilegedStatus.ERROR:
        logger.warning(f"admin_get_all_profiles failed, using direct query: {result.reason}")

    try:
        rows = await session.execute(
            select(Profile).order_by(Profile.created_at.desc(), Profile.id)
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching profiles: {e}")
        raise UpstreamFailureError(f"No se pudieron cargar los usuarios: {e}")
    return [_row_to_dict(p) for p in rows.scalars().all()]


async def get_all_users_with_stats(
    session: AsyncSession, gateway: PrivilegedGateway
) -> List[Dict]:
    """
    Every user with email, total points and total km.

    Raises:
        UpstreamFailureError: The fallback profile or completion query failed
    """
    profiles = await _get_all_profiles(session, gateway)

    completions: Dict[str, Dict[str, List[Dict]]] = {}
    needs_fallback = []
    for profile in profiles:
        result = await gateway.get_user_completions(session, profile["id"])
        if result.status == PrivilegedStatus.OK:
            parsed = _parse_completions(result.value)
            if parsed is not None:
                completions[profile["id"]] = parsed
                continue
            logger.warning(f"Malformed completions payload for user {profile['id']}")
        elif result.status == PrivilegedStatus.ERROR:
            logger.warning(f"Privileged completions failed for user {profile['id']}: {result.reason}")
        needs_fallback.append(profile["id"])

    completions.update(await _fetch_completions_direct(session, needs_fallback))

    users = []
    for profile in profiles:
        email = await _resolve_email(session, gateway, profile["id"])
        users.append({
            **profile,
            "email": email,
            **_score(completions.get(profile["id"], _empty_completions())),
        })
    return users


async def _get_members_by_team(
    session: AsyncSession, gateway: PrivilegedGateway, team_ids: List[str]
) -> Dict[str, List[Dict]]:
    """Memberships per team ordered by join time."""
    members_by_team: Dict[str, List[Dict]] = {team_id: [] for team_id in team_ids}

    result = await gateway.get_all_team_members(session)
    if result.status == PrivilegedStatus.OK and isinstance(result.value, list):
        for row in sorted(result.value, key=lambda r: (str(r.get("joined_at") or ""), r.get("id") or 0)):
            if row.get("team_id") in members_by_team:
                members_by_team[row["team_id"]].append(row)
        return members_by_team
    if result.status == PrivilegedStatus.ERROR:
        logger.warning(f"admin_get_all_team_members failed, using direct queries: {result.reason}")

    try:
        for team_id in team_ids:
            rows = await session.execute(
                select(TeamMember)
                .where(TeamMember.team_id == team_id)
                .order_by(TeamMember.joined_at, TeamMember.id)
            )
            members_by_team[team_id] = [_row_to_dict(m) for m in rows.scalars().all()]
    except SQLAlchemyError as e:
        logger.error(f"Error fetching team members: {e}")
        raise UpstreamFailureError(f"No se pudieron cargar los miembros: {e}")
    return members_by_team


async def _get_profiles_by_id(
    session: AsyncSession, gateway: PrivilegedGateway, user_ids: List[str]
) -> Dict[str, Dict]:
    if not user_ids:
        return {}
    wanted = set(user_ids)

    result = await gateway.get_all_profiles(session)
    if result.status == PrivilegedStatus.OK and isinstance(result.value, list) and result.value:
        return {p["id"]: p for p in result.value if p.get("id") in wanted}
    if result.status == PrivilegedStatus.ERROR:
        logger.warning(f"admin_get_all_profiles failed, using direct query: {result.reason}")

    try:
        rows = await session.execute(select(Profile).where(Profile.id.in_(user_ids)))
    except SQLAlchemyError as e:
        logger.error(f"Error fetching member profiles: {e}")
        raise UpstreamFailureError(f"No se pudieron cargar los perfiles: {e}")
    return {p.id: _row_to_dict(p) for p in rows.scalars().all()}


async def get_all_teams_with_stats(
    session: AsyncSession, gateway: PrivilegedGateway
) -> List[Dict]:
    """
    Every team with members, live member count, total points and total km.

    Raises:
        UpstreamFailureError: A fallback query failed
    """
    try:
        rows = await session.execute(select(Team).order_by(Team.created_at.desc(), Team.id))
        teams = list(rows.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Error fetching teams: {e}")
        raise UpstreamFailureError(f"No se pudieron cargar los equipos: {e}")

    team_ids = [t.id for t in teams]
    members_by_team = await _get_members_by_team(session, gateway, team_ids)
    all_member_ids = sorted({m["user_id"] for members in members_by_team.values() for m in members})
    profiles = await _get_profiles_by_id(session, gateway, all_member_ids)
    completions = await _fetch_completions_direct(session, all_member_ids)

    formatted = []
    for team in teams:
        members = members_by_team.get(team.id, [])
        team_completions = _empty_completions()
        for member in members:
            for key, rows in completions.get(member["user_id"], _empty_completions()).items():
                team_completions[key].extend(rows)

        formatted.append({
            "id": team.id,
            "name": team.name,
            "display_name": team_service.team_display_name(team.id, team.name),
            "created_by": team.created_by,
            "max_members": team.max_members,
            "effective_capacity": team_service.effective_capacity(team.max_members),
            "whatsapp_link": team.whatsapp_link,
            "avatar_url": team.avatar_url,
            "created_at": team.created_at,
            "members": [
                {
                    "id": m.get("id"),
                    "user_id": m["user_id"],
                    "role": m.get("role"),
                    "joined_at": m.get("joined_at"),
                    "profile": profiles.get(m["user_id"]),
                }
                for m in members
            ],
            "member_count": len(members),
            **_score(team_completions),
        })
    return formatted


async def update_user_plan(session: AsyncSession, user_id: str, plan: str) -> Dict:
    """
    Set a user's subscription plan.

    Raises:
        ValueError: Unknown plan
        NotFoundError: User does not exist
    """
    valid_plans = [p.value for p in UserPlan]
    if plan not in valid_plans:
        raise ValueError(f"Plan inválido: {plan}. Debe ser uno de {', '.join(valid_plans)}")

    profile = await session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("Usuario no encontrado")

    profile.user_plan = plan
    await session.flush()
    await session.refresh(profile)
    logger.info(f"Plan for user {user_id} set to {plan}")
    return _row_to_dict(profile)
