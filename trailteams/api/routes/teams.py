"""Team directory route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.api.auth_dependencies import get_current_user
from trailteams.api.routes import limiter
from trailteams.database.db import get_db_session
from trailteams.models.schemas import (
    TeamCreate,
    TeamUpdate,
    TeamResponse,
    LeaveTeamResponse,
    TeamDistanceResponse,
    TeamMemberResponse,
)
from trailteams.services import team_service
from trailteams.services.errors import TeamServiceError
from trailteams.services.privileged_service import PrivilegedGateway, get_privileged_gateway

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams/mine", response_model=Optional[TeamResponse])
async def get_my_team(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    gateway: PrivilegedGateway = Depends(get_privileged_gateway),
):
    """Get the caller's team, or null when they have none."""
    try:
        return await team_service.get_user_team(session, user["id"], gateway)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error loading user team: {e}")
        raise HTTPException(status_code=500, detail="Error loading team")


@router.get("/api/teams", response_model=List[TeamResponse])
async def list_teams(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Team directory, newest first."""
    try:
        return await team_service.get_all_teams(session, viewer_id=user["id"])
    except Exception as e:
        logger.error(f"Error listing teams: {e}")
        raise HTTPException(status_code=500, detail="Error listing teams")


@router.get("/api/teams/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a single team with its members."""
    try:
        return await team_service.get_team(session, team_id, viewer_id=user["id"])
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error loading team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading team")


@router.get("/api/teams/{team_id}/members", response_model=List[TeamMemberResponse])
async def get_team_members(
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Members of a team ordered by join time."""
    try:
        team = await team_service.get_team(session, team_id, viewer_id=user["id"])
        return team["members"]
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error loading members of team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading team members")


@router.get("/api/teams/{team_id}/distance", response_model=TeamDistanceResponse)
async def get_team_distance(
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    gateway: PrivilegedGateway = Depends(get_privileged_gateway),
):
    """Total km walked by the team's members."""
    try:
        total = await team_service.get_team_total_distance(session, team_id, gateway)
        return {"team_id": team_id, "total_km": total}
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error computing distance for team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error computing team distance")


@router.post("/api/teams", response_model=TeamResponse)
@limiter.limit("10/minute")
async def create_team(
    request: Request,
    payload: TeamCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a team with the caller as leader."""
    try:
        return await team_service.create_team(
            session,
            user["id"],
            name=payload.name,
            max_members=payload.max_members,
            whatsapp_link=payload.whatsapp_link,
            avatar_url=payload.avatar_url,
        )
    except TeamServiceError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating team: {e}")
        raise HTTPException(status_code=500, detail="Error creating team")


@router.post("/api/teams/{team_id}/join", response_model=TeamResponse)
@limiter.limit("20/minute")
async def join_team(
    request: Request,
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a team directly."""
    try:
        return await team_service.join_team(session, user["id"], team_id)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error joining team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error joining team")


@router.post("/api/teams/{team_id}/leave", response_model=LeaveTeamResponse)
async def leave_team(
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a team. The last member leaving deletes it."""
    try:
        return await team_service.leave_team(session, user["id"], team_id)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error leaving team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error leaving team")


@router.patch("/api/teams/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: str,
    payload: TeamUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rename a team or change its chat link (leader only)."""
    fields = payload.model_fields_set
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        team = None
        if "name" in fields:
            team = await team_service.update_team_name(session, user["id"], team_id, payload.name)
        if "whatsapp_link" in fields:
            team = await team_service.update_team_whatsapp_link(
                session, user["id"], team_id, payload.whatsapp_link
            )
        return team
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error updating team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating team")


@router.delete("/api/teams/{team_id}")
async def delete_team(
    team_id: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    gateway: PrivilegedGateway = Depends(get_privileged_gateway),
):
    """Delete a team the caller created or leads."""
    try:
        await team_service.delete_team(session, team_id, gateway, user_id=user["id"])
        return {"status": "ok", "message": "Team deleted"}
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error deleting team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error deleting team")
