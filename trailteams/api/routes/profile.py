"""Profile, location and plan route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from trailteams.api.auth_dependencies import get_current_user
from trailteams.database.db import get_db_session
from trailteams.models.schemas import (
    ProfileResponse,
    LocationUpdate,
    PlanResponse,
    PageAccessResponse,
)
from trailteams.services import plan_service, user_service
from trailteams.services.errors import TeamServiceError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/profile", response_model=ProfileResponse)
async def get_profile(user: dict = Depends(get_current_user)):
    """The caller's own profile."""
    return user["profile"]


@router.put("/api/profile/location", response_model=ProfileResponse)
async def update_location(
    payload: LocationUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set or clear the caller's coordinates."""
    try:
        return await user_service.update_location(
            session, user["id"], payload.latitude, payload.longitude, payload.location
        )
    except TeamServiceError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating location: {e}")
        raise HTTPException(status_code=500, detail="Error updating location")


@router.get("/api/profile/plan", response_model=PlanResponse)
async def get_plan(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's subscription plan."""
    plan = await plan_service.get_user_plan(session, user["id"])
    return {"user_plan": plan, "is_admin": user["is_admin"]}


@router.get("/api/profile/access", response_model=PageAccessResponse)
async def check_page_access(
    path: str = Query(..., min_length=1),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Whether the caller's plan unlocks a page."""
    plan = await plan_service.get_user_plan(session, user["id"])
    return {
        "path": path,
        "required_plan": plan_service.get_required_plan_for_page(path),
        "user_plan": plan,
        "can_access": plan_service.can_access_page(plan, path, user["is_admin"]),
    }
