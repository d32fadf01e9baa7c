"""Invitation and join-request route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.api.auth_dependencies import get_current_user
from trailteams.api.routes import limiter
from trailteams.database.db import get_db_session
from trailteams.models.schemas import (
    InvitationCreate,
    InvitationResponse,
    AcceptInvitationResponse,
    JoinRequestResponse,
    AcceptJoinRequestResponse,
)
from trailteams.services import invitation_service
from trailteams.services.errors import TeamServiceError

logger = logging.getLogger(__name__)
router = APIRouter()


# ──────────────────────────────────────────────────────────────
# Invitations
# ──────────────────────────────────────────────────────────────


@router.post("/api/teams/{team_id}/invitations", response_model=InvitationResponse)
@limiter.limit("30/minute")
async def send_invitation(
    request: Request,
    team_id: str,
    payload: InvitationCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invite a user to the caller's team (leader only)."""
    try:
        return await invitation_service.send_team_invitation(
            session, user["id"], team_id, payload.invitee_id
        )
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error sending invitation: {e}")
        raise HTTPException(status_code=500, detail="Error sending invitation")


@router.get("/api/invitations", response_model=List[InvitationResponse])
async def get_my_invitations(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Pending invitations addressed to the caller."""
    try:
        return await invitation_service.get_user_invitations(session, user["id"])
    except Exception as e:
        logger.error(f"Error loading invitations: {e}")
        raise HTTPException(status_code=500, detail="Error loading invitations")


@router.post("/api/invitations/{invitation_id}/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    invitation_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept an invitation and join the team."""
    try:
        return await invitation_service.accept_invitation(session, invitation_id, user["id"])
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error accepting invitation {invitation_id}: {e}")
        raise HTTPException(status_code=500, detail="Error accepting invitation")


@router.post("/api/invitations/{invitation_id}/decline", response_model=InvitationResponse)
async def decline_invitation(
    invitation_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline an invitation."""
    try:
        return await invitation_service.decline_invitation(session, invitation_id, user["id"])
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error declining invitation {invitation_id}: {e}")
        raise HTTPException(status_code=500, detail="Error declining invitation")


# ──────────────────────────────────────────────────────────────
# Join requests
# ──────────────────────────────────────────────────────────────


@router.post("/api/teams/{team_id}/join-requests", response_model=JoinRequestResponse)
@limiter.limit("30/minute")
async def create_join_request(
    request: Request,
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Ask to join a team."""
    try:
        return await invitation_service.create_join_request(session, user["id"], team_id)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error creating join request: {e}")
        raise HTTPException(status_code=500, detail="Error creating join request")


@router.get("/api/teams/{team_id}/join-requests", response_model=List[JoinRequestResponse])
async def get_team_join_requests(
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Pending join requests for a team (leader only)."""
    try:
        return await invitation_service.get_team_join_requests(session, team_id, user["id"])
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error loading join requests for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading join requests")


@router.get("/api/join-requests/mine", response_model=List[JoinRequestResponse])
async def get_my_join_requests(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's own pending join requests."""
    try:
        return await invitation_service.get_user_join_requests(session, user["id"])
    except Exception as e:
        logger.error(f"Error loading join requests: {e}")
        raise HTTPException(status_code=500, detail="Error loading join requests")


@router.post(
    "/api/teams/{team_id}/join-requests/{request_id}/accept",
    response_model=AcceptJoinRequestResponse,
)
async def accept_join_request(
    team_id: str,
    request_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept a join request (leader only)."""
    try:
        return await invitation_service.accept_join_request(session, team_id, request_id, user["id"])
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error accepting join request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error accepting join request")


@router.post(
    "/api/teams/{team_id}/join-requests/{request_id}/decline",
    response_model=JoinRequestResponse,
)
async def decline_join_request(
    team_id: str,
    request_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline a join request (leader only)."""
    try:
        return await invitation_service.decline_join_request(session, team_id, request_id, user["id"])
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error declining join request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error declining join request")
