"""
Tests for token verification and admin detection.
"""

from datetime import timedelta

import jwt
import pytest

from trailteams.services import auth_service, user_service
from trailteams.tests.conftest import create_profile


def test_token_round_trip():
    token = auth_service.create_access_token({"sub": "user-1", "email": "a@example.com"})
    payload = auth_service.verify_token(token)
    assert payload["sub"] == "user-1"
    assert payload["email"] == "a@example.com"
    assert payload["aud"] == "authenticated"


def test_expired_token_is_rejected():
    token = auth_service.create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-10))
    assert auth_service.verify_token(token) is None


def test_token_without_subject_is_rejected():
    token = auth_service.create_access_token({"email": "a@example.com"})
    assert auth_service.verify_token(token) is None


def test_token_with_wrong_secret_is_rejected():
    token = jwt.encode(
        {"sub": "user-1", "aud": "authenticated", "exp": 9999999999},
        "another-secret",
        algorithm="HS256",
    )
    assert auth_service.verify_token(token) is None


def test_blank_token_is_rejected():
    assert auth_service.verify_token("") is None
    assert auth_service.verify_token("garbage") is None


def test_admin_emails_are_case_insensitive(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "Jefa@Example.com, otro@example.com")
    assert auth_service.is_admin_email("jefa@example.com") is True
    assert auth_service.is_admin_email("OTRO@example.com") is True
    assert auth_service.is_admin_email("nadie@example.com") is False
    assert auth_service.is_admin_email(None) is False


@pytest.mark.asyncio
async def test_get_or_create_profile_provisions_once(db_session):
    created = await user_service.get_or_create_profile(db_session, "new-user", "  ")
    assert created["name"] == "Caminante"
    assert created["user_plan"] == "gratis"

    again = await user_service.get_or_create_profile(db_session, "new-user", "Otro Nombre")
    assert again["name"] == "Caminante"


@pytest.mark.asyncio
async def test_update_location(db_session):
    await create_profile(db_session, "walker")
    updated = await user_service.update_location(db_session, "walker", 40.4, -3.7, "Madrid")
    assert (updated["latitude"], updated["longitude"], updated["location"]) == (40.4, -3.7, "Madrid")

    cleared = await user_service.update_location(db_session, "walker", None, None)
    assert cleared["latitude"] is None
    assert cleared["location"] == "Madrid"

    with pytest.raises(ValueError):
        await user_service.update_location(db_session, "walker", 40.4, None)
