"""
Invitation and join-request service.

Two pending-request tables with mirrored lifecycles:

- Invitations are sent by a team leader and resolved by the invitee.
- Join requests are sent by a prospective member and resolved by the leader.

Both go pending -> accepted (membership created) or pending -> declined.
Accepting re-checks capacity under the team lock, so a request created while
the team had room cannot push it over its effective capacity.
"""

import logging
import os
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.database.models import (
    Profile,
    Team,
    TeamInvitation,
    TeamJoinRequest,
    RequestStatus,
)
from trailteams.services import team_service
from trailteams.services.errors import (
    NotFoundError,
    CapacityExceededError,
    DuplicateMembershipError,
    UnauthorizedError,
)
from trailteams.utils.datetime_utils import utcnow, is_expired

logger = logging.getLogger(__name__)


def get_pending_ttl_days() -> Optional[int]:
    """Days a pending request stays actionable; None means forever."""
    value = os.getenv("PENDING_REQUEST_TTL_DAYS", "").strip()
    if not value:
        return None
    try:
        days = int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid PENDING_REQUEST_TTL_DAYS={value!r}")
        return None
    return days if days > 0 else None


def _is_live(row) -> bool:
    return row.status == RequestStatus.PENDING.value and not is_expired(
        row.created_at, get_pending_ttl_days()
    )


async def _ensure_team_has_room(session: AsyncSession, team: Team) -> None:
    count = await team_service.get_member_count(session, team.id)
    if count >= team_service.effective_capacity(team.max_members):
        raise CapacityExceededError("El equipo está lleno")


async def _load_names(session: AsyncSession, team_ids, user_ids) -> tuple:
    """Batch-fetch teams and profiles referenced by a page of requests."""
    team_map: Dict[str, Team] = {}
    profile_map: Dict[str, Profile] = {}
    if team_ids:
        result = await session.execute(select(Team).where(Team.id.in_(list(team_ids))))
        team_map = {t.id: t for t in result.scalars().all()}
    if user_ids:
        result = await session.execute(select(Profile).where(Profile.id.in_(list(user_ids))))
        profile_map = {p.id: p for p in result.scalars().all()}
    return team_map, profile_map


def _team_name(team_map: Dict[str, Team], team_id: str) -> str:
    team = team_map.get(team_id)
    return team_service.team_display_name(team_id, team.name if team else None)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


async def _format_invitations_batch(
    session: AsyncSession, invitations: List[TeamInvitation]
) -> List[Dict]:
    if not invitations:
        return []
    team_map, profile_map = await _load_names(
        session,
        {i.team_id for i in invitations},
        {i.inviter_id for i in invitations} | {i.invitee_id for i in invitations},
    )
    formatted = []
    for inv in invitations:
        inviter = profile_map.get(inv.inviter_id)
        invitee = profile_map.get(inv.invitee_id)
        formatted.append({
            "id": inv.id,
            "team_id": inv.team_id,
            "team_name": _team_name(team_map, inv.team_id),
            "inviter_id": inv.inviter_id,
            "inviter_name": inviter.name if inviter else None,
            "invitee_id": inv.invitee_id,
            "invitee_name": invitee.name if invitee else None,
            "status": inv.status,
            "created_at": inv.created_at,
            "responded_at": inv.responded_at,
        })
    return formatted


async def _get_pending_invitation(
    session: AsyncSession, team_id: str, invitee_id: str
) -> Optional[TeamInvitation]:
    result = await session.execute(
        select(TeamInvitation).where(
            TeamInvitation.team_id == team_id,
            TeamInvitation.invitee_id == invitee_id,
            TeamInvitation.status == RequestStatus.PENDING.value,
        )
    )
    return result.scalar_one_or_none()


async def send_team_invitation(
    session: AsyncSession, inviter_id: str, team_id: str, invitee_id: str
) -> Dict:
    """
    Invite a user to a team.

    Raises:
        NotFoundError: Team or invitee does not exist
        UnauthorizedError: Inviter is not the team's leader
        DuplicateMembershipError: Invitee already a member, or an invitation is pending
        CapacityExceededError: Team is full
    """
    team = await team_service.require_leader(session, team_id, inviter_id, "invitar miembros")

    invitee = await session.get(Profile, invitee_id)
    if not invitee:
        raise NotFoundError("Usuario no encontrado")

    if await team_service.get_membership(session, team_id, invitee_id):
        raise DuplicateMembershipError("El usuario ya es miembro de este equipo")

    await _ensure_team_has_room(session, team)

    existing = await _get_pending_invitation(session, team_id, invitee_id)
    if existing:
        if _is_live(existing):
            raise DuplicateMembershipError("Ya hay una invitación pendiente para este usuario")
        # Expired: consume it so a fresh invitation can take its place
        existing.status = RequestStatus.DECLINED.value
        existing.responded_at = utcnow()
        await session.flush()

    invitation = TeamInvitation(
        team_id=team_id,
        inviter_id=inviter_id,
        invitee_id=invitee_id,
        status=RequestStatus.PENDING.value,
    )
    session.add(invitation)
    await session.flush()
    await session.refresh(invitation)

    logger.info(f"User {inviter_id} invited {invitee_id} to team {team_id}")
    return (await _format_invitations_batch(session, [invitation]))[0]


async def get_user_invitations(session: AsyncSession, user_id: str) -> List[Dict]:
    """Pending invitations addressed to the user, newest first."""
    result = await session.execute(
        select(TeamInvitation)
        .where(
            TeamInvitation.invitee_id == user_id,
            TeamInvitation.status == RequestStatus.PENDING.value,
        )
        .order_by(TeamInvitation.created_at.desc(), TeamInvitation.id.desc())
    )
    invitations = [inv for inv in result.scalars().all() if _is_live(inv)]
    return await _format_invitations_batch(session, invitations)


async def _load_invitation_for_invitee(
    session: AsyncSession, invitation_id: int, user_id: str, action: str
) -> TeamInvitation:
    invitation = await session.get(TeamInvitation, invitation_id)
    if not invitation:
        raise NotFoundError("Invitación no encontrada")
    if invitation.invitee_id != user_id:
        raise UnauthorizedError(f"No autorizado para {action} esta invitación")
    if not _is_live(invitation):
        raise NotFoundError("La invitación ya no está pendiente")
    return invitation


async def accept_invitation(session: AsyncSession, invitation_id: int, user_id: str) -> Dict:
    """
    Accept an invitation and join its team.

    A full team leaves the invitation pending so it can be accepted later.

    Returns:
        Dict with the consumed invitation and the refreshed team

    Raises:
        NotFoundError: Invitation missing, not pending or expired
        UnauthorizedError: Caller is not the invitee
        CapacityExceededError: Team is full
        DuplicateMembershipError: Caller already belongs to a team
    """
    invitation = await _load_invitation_for_invitee(session, invitation_id, user_id, "aceptar")

    async with team_service.get_team_lock(invitation.team_id):
        await team_service.add_member_locked(session, invitation.team_id, user_id)
        invitation.status = RequestStatus.ACCEPTED.value
        invitation.responded_at = utcnow()
        await session.flush()
        team = await team_service.get_team(session, invitation.team_id)

    logger.info(f"User {user_id} accepted invitation {invitation_id}")
    return {
        "invitation": (await _format_invitations_batch(session, [invitation]))[0],
        "team": team,
    }


async def decline_invitation(session: AsyncSession, invitation_id: int, user_id: str) -> Dict:
    """Decline an invitation. Membership is untouched."""
    invitation = await _load_invitation_for_invitee(session, invitation_id, user_id, "rechazar")
    invitation.status = RequestStatus.DECLINED.value
    invitation.responded_at = utcnow()
    await session.flush()
    return (await _format_invitations_batch(session, [invitation]))[0]


# ---------------------------------------------------------------------------
# Join requests
# ---------------------------------------------------------------------------


async def _format_join_requests_batch(
    session: AsyncSession, requests: List[TeamJoinRequest]
) -> List[Dict]:
    if not requests:
        return []
    team_map, profile_map = await _load_names(
        session, {r.team_id for r in requests}, {r.requester_id for r in requests}
    )
    return [
        {
            "id": r.id,
            "team_id": r.team_id,
            "team_name": _team_name(team_map, r.team_id),
            "requester_id": r.requester_id,
            "requester": team_service.format_profile(profile_map.get(r.requester_id)),
            "status": r.status,
            "created_at": r.created_at,
            "responded_at": r.responded_at,
        }
        for r in requests
    ]


async def create_join_request(session: AsyncSession, user_id: str, team_id: str) -> Dict:
    """
    Ask to join a team.

    Raises:
        NotFoundError: Team or requester does not exist
        DuplicateMembershipError: Already in a team, or a request is pending
        CapacityExceededError: Team is full
    """
    team = await team_service.load_team(session, team_id)
    if not await session.get(Profile, user_id):
        raise NotFoundError("Usuario no encontrado")

    if await team_service.get_membership(session, team_id, user_id):
        raise DuplicateMembershipError("Ya eres miembro de este equipo")
    if await team_service.get_user_team_id(session, user_id) is not None:
        raise DuplicateMembershipError("Ya perteneces a otro equipo")

    await _ensure_team_has_room(session, team)

    result = await session.execute(
        select(TeamJoinRequest).where(
            TeamJoinRequest.team_id == team_id,
            TeamJoinRequest.requester_id == user_id,
            TeamJoinRequest.status == RequestStatus.PENDING.value,
        )
    )
    existing = result.scalar_one_or_none()
    if existing:
        if _is_live(existing):
            raise DuplicateMembershipError("Ya tienes una solicitud pendiente para este equipo")
        existing.status = RequestStatus.DECLINED.value
        existing.responded_at = utcnow()
        await session.flush()

    join_request = TeamJoinRequest(
        team_id=team_id,
        requester_id=user_id,
        status=RequestStatus.PENDING.value,
    )
    session.add(join_request)
    await session.flush()
    await session.refresh(join_request)

    logger.info(f"User {user_id} requested to join team {team_id}")
    return (await _format_join_requests_batch(session, [join_request]))[0]


async def get_team_join_requests(
    session: AsyncSession, team_id: str, leader_id: str
) -> List[Dict]:
    """Pending join requests for a team, oldest first (leader only)."""
    await team_service.require_leader(session, team_id, leader_id, "ver las solicitudes")
    result = await session.execute(
        select(TeamJoinRequest)
        .where(
            TeamJoinRequest.team_id == team_id,
            TeamJoinRequest.status == RequestStatus.PENDING.value,
        )
        .order_by(TeamJoinRequest.created_at, TeamJoinRequest.id)
    )
    requests = [r for r in result.scalars().all() if _is_live(r)]
    return await _format_join_requests_batch(session, requests)


async def get_user_join_requests(session: AsyncSession, user_id: str) -> List[Dict]:
    """The user's own pending join requests, newest first."""
    result = await session.execute(
        select(TeamJoinRequest)
        .where(
            TeamJoinRequest.requester_id == user_id,
            TeamJoinRequest.status == RequestStatus.PENDING.value,
        )
        .order_by(TeamJoinRequest.created_at.desc(), TeamJoinRequest.id.desc())
    )
    requests = [r for r in result.scalars().all() if _is_live(r)]
    return await _format_join_requests_batch(session, requests)


async def _load_join_request_for_leader(
    session: AsyncSession, team_id: str, request_id: int, leader_id: str, action: str
) -> TeamJoinRequest:
    join_request = await session.get(TeamJoinRequest, request_id)
    if not join_request or join_request.team_id != team_id:
        raise NotFoundError("Solicitud no encontrada")
    await team_service.require_leader(session, team_id, leader_id, f"{action} solicitudes")
    if not _is_live(join_request):
        raise NotFoundError("La solicitud ya no está pendiente")
    return join_request


async def accept_join_request(
    session: AsyncSession, team_id: str, request_id: int, leader_id: str
) -> Dict:
    """
    Accept a join request and add the requester to the team.

    If the team filled up since the request was made, the request is
    declined and committed before CapacityExceededError is raised.

    Raises:
        NotFoundError: Request missing, for another team, or not pending
        UnauthorizedError: Caller is not the team's leader
        CapacityExceededError: Team is full
        DuplicateMembershipError: Requester joined a team in the meantime
    """
    join_request = await _load_join_request_for_leader(
        session, team_id, request_id, leader_id, "aceptar"
    )

    async with team_service.get_team_lock(team_id):
        try:
            await team_service.add_member_locked(session, team_id, join_request.requester_id)
        except CapacityExceededError:
            join_request.status = RequestStatus.DECLINED.value
            join_request.responded_at = utcnow()
            await session.commit()
            logger.info(f"Join request {request_id} declined: team {team_id} is full")
            raise

        join_request.status = RequestStatus.ACCEPTED.value
        join_request.responded_at = utcnow()
        await session.flush()
        team = await team_service.get_team(session, team_id)

    logger.info(f"Leader {leader_id} accepted join request {request_id}")
    return {
        "join_request": (await _format_join_requests_batch(session, [join_request]))[0],
        "team": team,
    }


async def decline_join_request(
    session: AsyncSession, team_id: str, request_id: int, leader_id: str
) -> Dict:
    """Decline a join request. Membership is untouched."""
    join_request = await _load_join_request_for_leader(
        session, team_id, request_id, leader_id, "rechazar"
    )
    join_request.status = RequestStatus.DECLINED.value
    join_request.responded_at = utcnow()
    await session.flush()
    return (await _format_join_requests_batch(session, [join_request]))[0]
