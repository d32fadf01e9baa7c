"""
Team directory service.

Owns the team lifecycle (create/delete), membership (join/leave/add/remove),
capacity enforcement and leader assignment.

Capacity is always computed with ``effective_capacity``; joins go through
``_insert_member_if_capacity`` which is serialized per team and performs a
conditional insert, so two concurrent joins cannot both take the last seat.
"""

import asyncio
import logging
import weakref
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, delete, func, literal, insert, String
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.database.models import (
    Profile,
    Team,
    TeamMember,
    TeamRole,
    TeamInvitation,
    TeamJoinRequest,
    WalkCompletion,
)
from trailteams.services.errors import (
    NotFoundError,
    CapacityExceededError,
    DuplicateMembershipError,
    UnauthorizedError,
    UpstreamFailureError,
)
from trailteams.services.privileged_service import PrivilegedGateway, PrivilegedStatus
from trailteams.utils.constants import (
    MIN_EFFECTIVE_CAPACITY,
    DEFAULT_MAX_MEMBERS,
    TEAM_LABEL_PREFIX,
    TEAM_LABEL_ID_CHARS,
)
from trailteams.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Per-team locks; entries disappear once no coroutine holds a reference
_team_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def get_team_lock(team_id: str) -> asyncio.Lock:
    """Return the in-process lock that serializes membership writes for a team."""
    lock = _team_locks.get(team_id)
    if lock is None:
        lock = asyncio.Lock()
        _team_locks[team_id] = lock
    return lock


# ---------------------------------------------------------------------------
# Capacity and display helpers
# ---------------------------------------------------------------------------


def effective_capacity(max_members: Optional[int]) -> int:
    """The enforced member limit: the stored value, but never below 14."""
    return max(max_members or 0, MIN_EFFECTIVE_CAPACITY)


def capacity_label(member_count: int, max_members: Optional[int]) -> str:
    return f"{member_count} de {effective_capacity(max_members)} miembros"


def team_display_name(team_id: str, name: Optional[str]) -> str:
    """Team name, or a short id-based label when the team has none."""
    if name and name.strip():
        return name
    return f"{TEAM_LABEL_PREFIX} {str(team_id)[:TEAM_LABEL_ID_CHARS]}"


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_member_count(session: AsyncSession, team_id: str) -> int:
    """Live member count for a team."""
    result = await session.execute(
        select(func.count(TeamMember.id)).where(TeamMember.team_id == team_id)
    )
    return result.scalar_one()


async def get_user_team_id(session: AsyncSession, user_id: str) -> Optional[str]:
    """Team id the user currently belongs to, if any."""
    result = await session.execute(
        select(TeamMember.team_id)
        .where(TeamMember.user_id == user_id)
        .order_by(TeamMember.joined_at, TeamMember.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_membership(
    session: AsyncSession, team_id: str, user_id: str
) -> Optional[TeamMember]:
    result = await session.execute(
        select(TeamMember).where(
            TeamMember.team_id == team_id, TeamMember.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def is_team_leader(session: AsyncSession, team_id: str, user_id: str) -> bool:
    membership = await get_membership(session, team_id, user_id)
    return membership is not None and membership.role == TeamRole.LEADER.value


async def load_team(
    session: AsyncSession, team_id: str, for_update: bool = False
) -> Team:
    query = select(Team).where(Team.id == team_id)
    if for_update:
        # Row lock on Postgres; ignored by SQLite
        query = query.with_for_update()
    result = await session.execute(query)
    team = result.scalar_one_or_none()
    if not team:
        raise NotFoundError("Equipo no encontrado")
    return team


async def _require_profile(session: AsyncSession, user_id: str) -> Profile:
    profile = await session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("Usuario no encontrado")
    return profile


async def require_leader(session: AsyncSession, team_id: str, user_id: str, action: str) -> Team:
    """
    Load a team and verify the user leads it.

    Raises:
        NotFoundError: Team does not exist
        UnauthorizedError: User is not the team's leader
    """
    team = await load_team(session, team_id)
    if not await is_team_leader(session, team_id, user_id):
        raise UnauthorizedError(f"Solo los líderes del equipo pueden {action}")
    return team


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_profile(profile: Optional[Profile], include_contact: bool = False) -> Optional[Dict]:
    """Public view of a profile. The address is never included."""
    if profile is None:
        return None
    return {
        "id": profile.id,
        "name": profile.name,
        "location": profile.location,
        "avatar_url": profile.avatar_url,
        "phone_number": profile.phone_number if include_contact else None,
    }


async def _format_teams_batch(
    session: AsyncSession,
    teams: List[Team],
    viewer_id: Optional[str] = None,
    emails: Optional[Dict[str, Dict[str, Optional[str]]]] = None,
) -> List[Dict]:
    """
    Format teams with members and profiles using batch queries.

    Contact fields (WhatsApp link, phone numbers) are included when there is
    no viewer (internal snapshot) or the viewer belongs to the team.
    """
    if not teams:
        return []

    team_ids = [t.id for t in teams]
    members_result = await session.execute(
        select(TeamMember)
        .where(TeamMember.team_id.in_(team_ids))
        .order_by(TeamMember.joined_at, TeamMember.id)
    )
    members = members_result.scalars().all()

    user_ids = list({m.user_id for m in members})
    profile_map: Dict[str, Profile] = {}
    if user_ids:
        profiles_result = await session.execute(select(Profile).where(Profile.id.in_(user_ids)))
        profile_map = {p.id: p for p in profiles_result.scalars().all()}

    members_by_team: Dict[str, List[TeamMember]] = {tid: [] for tid in team_ids}
    for m in members:
        members_by_team[m.team_id].append(m)

    formatted = []
    for team in teams:
        team_members = members_by_team[team.id]
        include_contact = viewer_id is None or any(m.user_id == viewer_id for m in team_members)
        team_emails = (emails or {}).get(team.id, {})
        member_dicts = []
        for m in team_members:
            member = {
                "id": m.id,
                "team_id": m.team_id,
                "user_id": m.user_id,
                "role": m.role,
                "joined_at": m.joined_at,
                "profile": format_profile(profile_map.get(m.user_id), include_contact),
            }
            if emails is not None:
                member["email"] = team_emails.get(m.user_id)
            member_dicts.append(member)

        count = len(team_members)
        formatted.append({
            "id": team.id,
            "name": team.name,
            "display_name": team_display_name(team.id, team.name),
            "created_by": team.created_by,
            "max_members": team.max_members,
            "effective_capacity": effective_capacity(team.max_members),
            "member_count": count,
            "capacity_label": capacity_label(count, team.max_members),
            "is_full": count >= effective_capacity(team.max_members),
            "whatsapp_link": team.whatsapp_link if include_contact else None,
            "avatar_url": team.avatar_url,
            "created_at": team.created_at,
            "updated_at": team.updated_at,
            "members": member_dicts,
        })
    return formatted


async def get_team(
    session: AsyncSession, team_id: str, viewer_id: Optional[str] = None
) -> Dict:
    """
    Get a team snapshot with members.

    Raises:
        NotFoundError: If the team does not exist
    """
    team = await load_team(session, team_id)
    # Core statements may have changed the row behind the identity map
    await session.refresh(team)
    return (await _format_teams_batch(session, [team], viewer_id=viewer_id))[0]


async def get_team_members_by_team_id(session: AsyncSession, team_id: str) -> List[Dict]:
    """Members of a team ordered by join time, with public profiles."""
    snapshot = await get_team(session, team_id)
    return snapshot["members"]


async def get_all_teams(session: AsyncSession, viewer_id: Optional[str] = None) -> List[Dict]:
    """Directory of every team, newest first."""
    result = await session.execute(
        select(Team).order_by(Team.created_at.desc(), Team.id)
    )
    return await _format_teams_batch(session, list(result.scalars().all()), viewer_id=viewer_id)


async def _get_member_emails(
    session: AsyncSession, gateway: Optional[PrivilegedGateway], team_ids: Iterable[str]
) -> Dict[str, Dict[str, Optional[str]]]:
    """Best-effort member emails per team; missing entries stay absent."""
    emails: Dict[str, Dict[str, Optional[str]]] = {}
    if gateway is None:
        return emails
    for team_id in team_ids:
        result = await gateway.get_team_member_emails(session, team_id)
        if result.status == PrivilegedStatus.OK:
            emails[team_id] = {row["user_id"]: row.get("email") for row in result.value or []}
        elif result.status == PrivilegedStatus.UNAVAILABLE:
            logger.debug(f"Member emails unavailable for team {team_id}: {result.reason}")
        else:
            logger.warning(f"Failed to fetch member emails for team {team_id}: {result.reason}")
    return emails


async def get_user_teams(
    session: AsyncSession, user_id: str, gateway: Optional[PrivilegedGateway] = None
) -> List[Dict]:
    """Teams the user belongs to, with members and best-effort emails."""
    result = await session.execute(
        select(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
        .order_by(TeamMember.joined_at, Team.id)
    )
    teams = list(result.scalars().unique().all())
    emails = await _get_member_emails(session, gateway, [t.id for t in teams])
    return await _format_teams_batch(session, teams, viewer_id=user_id, emails=emails)


async def get_user_team(
    session: AsyncSession, user_id: str, gateway: Optional[PrivilegedGateway] = None
) -> Optional[Dict]:
    """The user's team, or None when they have not joined one."""
    teams = await get_user_teams(session, user_id, gateway)
    return teams[0] if teams else None


# ---------------------------------------------------------------------------
# Membership writes
# ---------------------------------------------------------------------------


async def _insert_member_if_capacity(
    session: AsyncSession, team: Team, user_id: str, role: str
) -> None:
    """
    Insert a membership row only while the team is below effective capacity.

    Must be called with the team's lock held.

    Raises:
        CapacityExceededError: Team is already full
        DuplicateMembershipError: User is already a member (unique constraint)
    """
    cap = effective_capacity(team.max_members)
    current_count = (
        select(func.count(TeamMember.id))
        .where(TeamMember.team_id == team.id)
        .correlate(None)
        .scalar_subquery()
    )
    stmt = insert(TeamMember).from_select(
        ["team_id", "user_id", "role"],
        select(
            literal(team.id, String),
            literal(user_id, String),
            literal(role, String),
        ).where(current_count < cap),
    )
    try:
        async with session.begin_nested():
            result = await session.execute(stmt)
    except IntegrityError:
        raise DuplicateMembershipError("Ya eres miembro de este equipo")

    if result.rowcount == 0:
        raise CapacityExceededError("El equipo está lleno")


async def add_member_locked(
    session: AsyncSession,
    team_id: str,
    user_id: str,
    enforce_single_team: bool = True,
) -> Team:
    """
    Shared join path for direct joins, admin adds and accepted requests.

    Caller must hold ``get_team_lock(team_id)``.
    """
    team = await load_team(session, team_id, for_update=True)
    await _require_profile(session, user_id)

    if await get_membership(session, team_id, user_id):
        raise DuplicateMembershipError("Ya eres miembro de este equipo")

    if enforce_single_team:
        current_team_id = await get_user_team_id(session, user_id)
        if current_team_id is not None:
            raise DuplicateMembershipError("Ya perteneces a otro equipo")

    await _insert_member_if_capacity(session, team, user_id, TeamRole.MEMBER.value)
    return team


async def create_team(
    session: AsyncSession,
    user_id: str,
    name: Optional[str] = None,
    max_members: int = DEFAULT_MAX_MEMBERS,
    whatsapp_link: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> Dict:
    """
    Create a team with the caller as its only member and leader.

    Raises:
        NotFoundError: Creator has no profile
        DuplicateMembershipError: Creator already belongs to a team
        ValueError: max_members is not positive
    """
    if max_members is None or max_members < 1:
        raise ValueError("max_members must be at least 1")

    await _require_profile(session, user_id)
    if await get_user_team_id(session, user_id) is not None:
        raise DuplicateMembershipError("Ya perteneces a un equipo")

    team = Team(
        name=_clean_optional(name),
        created_by=user_id,
        max_members=max_members,
        whatsapp_link=_clean_optional(whatsapp_link),
        avatar_url=avatar_url,
    )
    session.add(team)
    await session.flush()

    session.add(TeamMember(team_id=team.id, user_id=user_id, role=TeamRole.LEADER.value))
    await session.flush()

    logger.info(f"User {user_id} created team {team.id}")
    return await get_team(session, team.id)


async def join_team(session: AsyncSession, user_id: str, team_id: str) -> Dict:
    """
    Join a team as a member.

    Raises:
        NotFoundError: Team or profile missing
        DuplicateMembershipError: Already in this team or another team
        CapacityExceededError: Team at effective capacity
    """
    async with get_team_lock(team_id):
        await add_member_locked(session, team_id, user_id)
        logger.info(f"User {user_id} joined team {team_id}")
        return await get_team(session, team_id)


async def add_user_to_team(session: AsyncSession, user_id: str, team_id: str) -> Dict:
    """Admin add: same capacity and duplicate checks, without the single-team rule."""
    async with get_team_lock(team_id):
        await add_member_locked(session, team_id, user_id, enforce_single_team=False)
        logger.info(f"Admin added user {user_id} to team {team_id}")
        return await get_team(session, team_id)


async def _remove_member_locked(session: AsyncSession, team_id: str, user_id: str) -> Dict:
    """
    Delete a membership and keep exactly one leader.

    Returns:
        Dict with remaining_count and new_leader_id (if leadership moved)
    """
    membership = await get_membership(session, team_id, user_id)
    if not membership:
        raise NotFoundError("El usuario no es miembro de este equipo")

    was_leader = membership.role == TeamRole.LEADER.value
    await session.delete(membership)
    await session.flush()

    remaining = await session.execute(
        select(TeamMember)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at, TeamMember.id)
    )
    remaining_members = remaining.scalars().all()

    new_leader_id = None
    if was_leader and remaining_members:
        successor = remaining_members[0]
        successor.role = TeamRole.LEADER.value
        await session.flush()
        new_leader_id = successor.user_id
        logger.info(f"Leadership of team {team_id} passed to {new_leader_id}")

    return {"remaining_count": len(remaining_members), "new_leader_id": new_leader_id}


async def remove_user_from_team(session: AsyncSession, user_id: str, team_id: str) -> Dict:
    """Admin removal of a member. Returns the refreshed team."""
    async with get_team_lock(team_id):
        await load_team(session, team_id)
        await _remove_member_locked(session, team_id, user_id)
        logger.info(f"Admin removed user {user_id} from team {team_id}")
        return await get_team(session, team_id)


async def leave_team(session: AsyncSession, user_id: str, team_id: str) -> Dict:
    """
    Leave a team. The last member leaving deletes the team.

    Returns:
        Dict with team_deleted, new_leader_id and the refreshed team (or None)
    """
    async with get_team_lock(team_id):
        await load_team(session, team_id)
        outcome = await _remove_member_locked(session, team_id, user_id)

        if outcome["remaining_count"] == 0:
            await _delete_team_rows(session, team_id)
            logger.info(f"Team {team_id} deleted after its last member left")
            return {"team_deleted": True, "new_leader_id": None, "team": None}

        logger.info(f"User {user_id} left team {team_id}")
        return {
            "team_deleted": False,
            "new_leader_id": outcome["new_leader_id"],
            "team": await get_team(session, team_id),
        }


# ---------------------------------------------------------------------------
# Team edits and deletion
# ---------------------------------------------------------------------------


async def update_team_name(
    session: AsyncSession, user_id: str, team_id: str, name: Optional[str]
) -> Dict:
    """Rename a team (leader only). Blank names clear it."""
    team = await require_leader(session, team_id, user_id, "cambiar el nombre")
    team.name = _clean_optional(name)
    team.updated_at = utcnow()
    await session.flush()
    return await get_team(session, team_id)


async def update_team_whatsapp_link(
    session: AsyncSession, user_id: str, team_id: str, whatsapp_link: Optional[str]
) -> Dict:
    """Set or clear the team's chat link (leader only)."""
    team = await require_leader(session, team_id, user_id, "cambiar el enlace de WhatsApp")
    team.whatsapp_link = _clean_optional(whatsapp_link)
    team.updated_at = utcnow()
    await session.flush()
    return await get_team(session, team_id)


async def _delete_team_rows(session: AsyncSession, team_id: str) -> None:
    """Direct delete of a team and everything that references it."""
    await session.execute(delete(TeamInvitation).where(TeamInvitation.team_id == team_id))
    await session.execute(delete(TeamJoinRequest).where(TeamJoinRequest.team_id == team_id))
    await session.execute(delete(TeamMember).where(TeamMember.team_id == team_id))
    await session.execute(delete(Team).where(Team.id == team_id))
    await session.flush()


async def delete_team(
    session: AsyncSession,
    team_id: str,
    gateway: PrivilegedGateway,
    user_id: Optional[str] = None,
    is_admin: bool = False,
) -> None:
    """
    Delete a team: privileged function first, direct delete as fallback.

    Self-service callers must be the team's creator or current leader;
    administrators may delete any team.

    Raises:
        NotFoundError: Team does not exist
        UnauthorizedError: Caller may not delete this team
        UpstreamFailureError: The fallback delete failed
    """
    team = await load_team(session, team_id)
    if not is_admin:
        allowed = team.created_by == user_id or (
            user_id is not None and await is_team_leader(session, team_id, user_id)
        )
        if not allowed:
            raise UnauthorizedError("Solo el creador del equipo puede eliminarlo")

    async with get_team_lock(team_id):
        result = await gateway.delete_team(session, team_id)
        if result.status == PrivilegedStatus.OK:
            logger.info(f"Team {team_id} deleted via privileged function")
            return
        if result.status == PrivilegedStatus.ERROR:
            logger.warning(f"Privileged team delete failed for {team_id}, falling back: {result.reason}")
        else:
            logger.debug(f"Privileged team delete unavailable: {result.reason}")

        try:
            async with session.begin_nested():
                await _delete_team_rows(session, team_id)
        except SQLAlchemyError as e:
            logger.error(f"Error deleting team {team_id}: {e}")
            raise UpstreamFailureError(f"No se pudo eliminar el equipo: {e}")
        logger.info(f"Team {team_id} deleted")


async def get_team_total_distance(
    session: AsyncSession, team_id: str, gateway: Optional[PrivilegedGateway] = None
) -> float:
    """Sum of members' walk distance in km, rounded to one decimal."""
    await load_team(session, team_id)

    if gateway is not None:
        result = await gateway.get_team_total_distance(session, team_id)
        if result.status == PrivilegedStatus.OK:
            return round(float(result.value or 0), 1)
        if result.status == PrivilegedStatus.ERROR:
            logger.warning(f"Privileged team distance failed for {team_id}: {result.reason}")

    total = await session.execute(
        select(func.coalesce(func.sum(WalkCompletion.distance_km), 0.0))
        .join(TeamMember, TeamMember.user_id == WalkCompletion.user_id)
        .where(TeamMember.team_id == team_id)
    )
    return round(float(total.scalar_one() or 0), 1)
