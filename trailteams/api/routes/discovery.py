"""Proximity discovery route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.api.auth_dependencies import get_current_user
from trailteams.database.db import get_db_session
from trailteams.models.schemas import NearbyUserResponse, AvailableTeamResponse
from trailteams.services import proximity_service
from trailteams.services.errors import TeamServiceError
from trailteams.services.privileged_service import PrivilegedGateway, get_privileged_gateway
from trailteams.utils.constants import DEFAULT_SEARCH_RADIUS_MILES

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/discovery/users", response_model=List[NearbyUserResponse])
async def find_nearby_users(
    radius_miles: float = Query(DEFAULT_SEARCH_RADIUS_MILES, gt=0, le=500),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    gateway: PrivilegedGateway = Depends(get_privileged_gateway),
):
    """Users near the caller's saved location, nearest first."""
    profile = user["profile"]
    try:
        return await proximity_service.find_nearby_users(
            session,
            user["id"],
            profile.get("latitude"),
            profile.get("longitude"),
            radius_miles=radius_miles,
            gateway=gateway,
        )
    except TeamServiceError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error finding nearby users: {e}")
        raise HTTPException(status_code=500, detail="Error finding nearby users")


@router.get("/api/discovery/teams", response_model=List[AvailableTeamResponse])
async def find_available_teams(
    radius_miles: float = Query(DEFAULT_SEARCH_RADIUS_MILES, gt=0, le=500),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Teams with room and a member near the caller, nearest first."""
    profile = user["profile"]
    try:
        return await proximity_service.find_available_teams(
            session,
            user["id"],
            profile.get("latitude"),
            profile.get("longitude"),
            radius_miles=radius_miles,
        )
    except TeamServiceError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error finding available teams: {e}")
        raise HTTPException(status_code=500, detail="Error finding available teams")
