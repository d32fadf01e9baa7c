"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, service error handler) lives here; every
sub-router imports what it needs from this package.
"""

import os

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from trailteams.services.errors import TeamServiceError, HTTP_STATUS_BY_KIND

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Service errors -> HTTP
# ---------------------------------------------------------------------------
async def team_service_error_handler(request: Request, exc: TeamServiceError) -> JSONResponse:
    """Render a service error as {"detail", "kind"} with the kind's status code."""
    return JSONResponse(
        status_code=HTTP_STATUS_BY_KIND.get(exc.kind, 400),
        content=exc.to_dict(),
    )


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from trailteams.api.routes.health import router as health_router  # noqa: E402
from trailteams.api.routes.teams import router as teams_router  # noqa: E402
from trailteams.api.routes.invitations import router as invitations_router  # noqa: E402
from trailteams.api.routes.discovery import router as discovery_router  # noqa: E402
from trailteams.api.routes.profile import router as profile_router  # noqa: E402
from trailteams.api.routes.admin import router as admin_router  # noqa: E402

router = APIRouter()
router.include_router(health_router)
router.include_router(teams_router)
router.include_router(invitations_router)
router.include_router(discovery_router)
router.include_router(profile_router)
router.include_router(admin_router)
