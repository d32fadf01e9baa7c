"""
Gateway to the optional privileged database functions.

Some deployments install SECURITY DEFINER functions (see the alembic
migration ``002_privileged_functions``) that read across row-ownership
boundaries. They may be missing, so every call returns a
``PrivilegedResult`` that is OK, UNAVAILABLE or ERROR, and callers fall
back to ordinary queries on anything but OK.

Availability is probed once per gateway instance against ``pg_proc``.
Calls run inside a SAVEPOINT so a failing function cannot abort the
caller's transaction.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class PrivilegedStatus(str, enum.Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


@dataclass
class PrivilegedResult:
    status: PrivilegedStatus
    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: Any) -> "PrivilegedResult":
        return cls(PrivilegedStatus.OK, value=value)

    @classmethod
    def unavailable(cls, reason: str) -> "PrivilegedResult":
        return cls(PrivilegedStatus.UNAVAILABLE, reason=reason)

    @classmethod
    def error(cls, reason: str) -> "PrivilegedResult":
        return cls(PrivilegedStatus.ERROR, reason=reason)


# name -> (SQL, "rows" | "scalar")
PRIVILEGED_FUNCTIONS: Dict[str, tuple] = {
    "admin_get_all_profiles": ("SELECT * FROM admin_get_all_profiles()", "rows"),
    "admin_get_all_team_members": ("SELECT * FROM admin_get_all_team_members()", "rows"),
    "admin_get_user_completions": (
        "SELECT admin_get_user_completions(:user_id)",
        "scalar",
    ),
    "get_user_email": ("SELECT get_user_email(:user_id)", "scalar"),
    "admin_delete_team": ("SELECT admin_delete_team(:team_id)", "scalar"),
    "get_team_member_emails": ("SELECT * FROM get_team_member_emails(:team_id)", "rows"),
    "get_team_total_distance": ("SELECT get_team_total_distance(:team_id)", "scalar"),
    "get_user_team_memberships": (
        "SELECT * FROM get_user_team_memberships(:user_ids)",
        "rows",
    ),
}


class PrivilegedGateway:
    """Explicit capability probe plus typed calls to privileged functions."""

    def __init__(self):
        self._available: Optional[Set[str]] = None

    async def probe(self, session: AsyncSession) -> Set[str]:
        """Return the set of installed privileged functions (cached after first success)."""
        if self._available is not None:
            return self._available

        dialect = session.get_bind().dialect.name
        if dialect != "postgresql":
            self._available = set()
            return self._available

        try:
            async with session.begin_nested():
                result = await session.execute(
                    text("SELECT proname FROM pg_proc WHERE proname = ANY(:names)"),
                    {"names": list(PRIVILEGED_FUNCTIONS)},
                )
                self._available = set(result.scalars().all())
        except SQLAlchemyError as e:
            logger.warning(f"Privileged function probe failed: {e}")
            return set()

        missing = set(PRIVILEGED_FUNCTIONS) - self._available
        if missing:
            logger.info(f"Privileged functions not installed: {sorted(missing)}")
        return self._available

    async def call(
        self, session: AsyncSession, name: str, params: Optional[Dict[str, Any]] = None
    ) -> PrivilegedResult:
        """Run a privileged function. Never raises for database errors."""
        if name not in PRIVILEGED_FUNCTIONS:
            return PrivilegedResult.unavailable(f"Unknown privileged function {name}")

        available = await self.probe(session)
        if name not in available:
            return PrivilegedResult.unavailable(f"{name} is not installed")

        sql, returns = PRIVILEGED_FUNCTIONS[name]
        try:
            async with session.begin_nested():
                result = await session.execute(text(sql), params or {})
                if returns == "scalar":
                    value = result.scalar()
                else:
                    value = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            logger.warning(f"Privileged function {name} failed: {e}")
            return PrivilegedResult.error(str(e))

        return PrivilegedResult.ok(value)

    # Typed entry points

    async def get_all_profiles(self, session: AsyncSession) -> PrivilegedResult:
        return await self.call(session, "admin_get_all_profiles")

    async def get_all_team_members(self, session: AsyncSession) -> PrivilegedResult:
        return await self.call(session, "admin_get_all_team_members")

    async def get_user_completions(self, session: AsyncSession, user_id: str) -> PrivilegedResult:
        """OK value is a dict with keys walks, phases, trails, books, hikes."""
        return await self.call(session, "admin_get_user_completions", {"user_id": user_id})

    async def get_user_email(self, session: AsyncSession, user_id: str) -> PrivilegedResult:
        return await self.call(session, "get_user_email", {"user_id": user_id})

    async def delete_team(self, session: AsyncSession, team_id: str) -> PrivilegedResult:
        return await self.call(session, "admin_delete_team", {"team_id": team_id})

    async def get_team_member_emails(self, session: AsyncSession, team_id: str) -> PrivilegedResult:
        return await self.call(session, "get_team_member_emails", {"team_id": team_id})

    async def get_team_total_distance(self, session: AsyncSession, team_id: str) -> PrivilegedResult:
        return await self.call(session, "get_team_total_distance", {"team_id": team_id})

    async def get_user_team_memberships(
        self, session: AsyncSession, user_ids: List[str]
    ) -> PrivilegedResult:
        return await self.call(session, "get_user_team_memberships", {"user_ids": list(user_ids)})


_default_gateway = PrivilegedGateway()


def get_privileged_gateway() -> PrivilegedGateway:
    """FastAPI dependency returning the process-wide gateway."""
    return _default_gateway
