"""
Tests for the privileged function gateway.

SQLite has no pg_proc, so every function probes as not installed.
"""

import pytest

from trailteams.services.errors import ErrorKind, HTTP_STATUS_BY_KIND, NotFoundError, TeamServiceError
from trailteams.services.privileged_service import (
    PrivilegedGateway,
    PrivilegedStatus,
    get_privileged_gateway,
)


@pytest.mark.asyncio
async def test_probe_on_sqlite_finds_nothing(db_session):
    gateway = PrivilegedGateway()
    assert await gateway.probe(db_session) == set()


@pytest.mark.asyncio
async def test_calls_are_unavailable_without_functions(db_session):
    gateway = PrivilegedGateway()
    result = await gateway.get_user_email(db_session, "user-1")
    assert result.status == PrivilegedStatus.UNAVAILABLE
    assert result.value is None
    assert "get_user_email" in result.reason


@pytest.mark.asyncio
async def test_unknown_function_is_unavailable(db_session):
    result = await PrivilegedGateway().call(db_session, "drop_everything")
    assert result.status == PrivilegedStatus.UNAVAILABLE


def test_dependency_returns_shared_gateway():
    assert get_privileged_gateway() is get_privileged_gateway()


def test_service_errors_are_value_errors():
    error = NotFoundError("Equipo no encontrado")
    assert isinstance(error, ValueError)
    assert isinstance(error, TeamServiceError)
    assert error.to_dict() == {"detail": "Equipo no encontrado", "kind": "not_found"}
    assert HTTP_STATUS_BY_KIND[ErrorKind.NOT_FOUND] == 404
