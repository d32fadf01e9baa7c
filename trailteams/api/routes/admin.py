"""Admin route handlers: rollups, plans and team membership management."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.api.auth_dependencies import require_admin
from trailteams.database.db import get_db_session
from trailteams.models.schemas import (
    AdminUserResponse,
    AdminTeamResponse,
    AdminTeamMemberAdd,
    PlanUpdate,
    ProfileResponse,
    TeamResponse,
)
from trailteams.services import admin_service, team_service, user_service
from trailteams.services.errors import TeamServiceError
from trailteams.services.privileged_service import PrivilegedGateway, get_privileged_gateway

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/admin/users", response_model=List[AdminUserResponse])
async def get_users_with_stats(
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    gateway: PrivilegedGateway = Depends(get_privileged_gateway),
):
    """Every user with email, points and km."""
    try:
        return await admin_service.get_all_users_with_stats(session, gateway)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error fetching users with stats: {e}")
        raise HTTPException(status_code=500, detail="Error fetching users with stats")


@router.get("/api/admin/teams", response_model=List[AdminTeamResponse])
async def get_teams_with_stats(
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    gateway: PrivilegedGateway = Depends(get_privileged_gateway),
):
    """Every team with members, points and km."""
    try:
        return await admin_service.get_all_teams_with_stats(session, gateway)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error fetching teams with stats: {e}")
        raise HTTPException(status_code=500, detail="Error fetching teams with stats")


@router.put("/api/admin/users/{user_id}/plan", response_model=ProfileResponse)
async def update_user_plan(
    user_id: str,
    payload: PlanUpdate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Change a user's subscription plan."""
    try:
        await admin_service.update_user_plan(session, user_id, payload.plan)
        return await user_service.get_profile_by_id(session, user_id)
    except TeamServiceError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating plan for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating user plan")


@router.post("/api/admin/teams/{team_id}/members", response_model=TeamResponse)
async def add_team_member(
    team_id: str,
    payload: AdminTeamMemberAdd,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a user to a team, bypassing the single-team rule."""
    try:
        return await team_service.add_user_to_team(session, payload.user_id, team_id)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error adding user to team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error adding team member")


@router.delete("/api/admin/teams/{team_id}/members/{user_id}", response_model=TeamResponse)
async def remove_team_member(
    team_id: str,
    user_id: str,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a user from a team."""
    try:
        return await team_service.remove_user_from_team(session, user_id, team_id)
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error removing user from team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error removing team member")


@router.delete("/api/admin/teams/{team_id}")
async def delete_team(
    team_id: str,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    gateway: PrivilegedGateway = Depends(get_privileged_gateway),
):
    """Delete any team."""
    try:
        await team_service.delete_team(session, team_id, gateway, user_id=user["id"], is_admin=True)
        return {"status": "ok", "message": "Team deleted"}
    except TeamServiceError:
        raise
    except Exception as e:
        logger.error(f"Error deleting team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error deleting team")
