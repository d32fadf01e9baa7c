"""
Route tests with mocked services.

Authentication and the database session are replaced through
``app.dependency_overrides``; service calls are patched per test.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch, AsyncMock

from trailteams.api.main import app
from trailteams.api.auth_dependencies import get_current_user, require_admin
from trailteams.database.db import get_db_session
from trailteams.services.errors import (
    CapacityExceededError,
    DuplicateMembershipError,
    NotFoundError,
    PreconditionMissingError,
    UnauthorizedError,
    UpstreamFailureError,
)

TEAM_ID = "3f2a9c1e-0000-4000-8000-000000000001"


def _profile(**overrides):
    profile = {
        "id": "user-1",
        "name": "Caminante",
        "location": None,
        "address": None,
        "latitude": None,
        "longitude": None,
        "avatar_url": None,
        "phone_number": None,
        "start_date": None,
        "user_plan": "gratis",
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    profile.update(overrides)
    return profile


def _team(**overrides):
    team = {
        "id": TEAM_ID,
        "name": "Las Magnolias",
        "display_name": "Las Magnolias",
        "created_by": "user-1",
        "max_members": 6,
        "effective_capacity": 14,
        "member_count": 1,
        "capacity_label": "1 de 14 miembros",
        "is_full": False,
        "whatsapp_link": None,
        "avatar_url": None,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
        "members": [
            {
                "id": 1,
                "team_id": TEAM_ID,
                "user_id": "user-1",
                "role": "leader",
                "joined_at": "2024-01-01T00:00:00+00:00",
                "profile": {"id": "user-1", "name": "Caminante"},
            }
        ],
    }
    team.update(overrides)
    return team


@pytest.fixture
def current_user():
    return {"id": "user-1", "email": "user@example.com", "is_admin": False, "profile": _profile()}


@pytest.fixture
def client(current_user):
    """Authenticated client without a real database."""

    async def fake_session():
        yield None

    app.dependency_overrides[get_db_session] = fake_session
    app.dependency_overrides[get_current_user] = lambda: current_user
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client():
    """Client with a fake session but real token verification."""

    async def fake_session():
        yield None

    app.dependency_overrides[get_db_session] = fake_session
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# Health and auth
# ============================================================================


def test_health():
    response = TestClient(app).get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_token_is_rejected(anon_client):
    response = anon_client.get("/api/teams")
    assert response.status_code in (401, 403)


def test_invalid_token_is_rejected(anon_client):
    response = anon_client.get("/api/teams", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


# ============================================================================
# Teams
# ============================================================================


class TestTeamEndpoints:
    def test_create_team(self, client):
        with patch(
            "trailteams.services.team_service.create_team",
            new_callable=AsyncMock,
            return_value=_team(),
        ) as mock_create:
            response = client.post("/api/teams", json={"name": "Las Magnolias", "max_members": 6})

        assert response.status_code == 200
        assert response.json()["capacity_label"] == "1 de 14 miembros"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["name"] == "Las Magnolias"
        assert kwargs["max_members"] == 6

    def test_create_team_validates_max_members(self, client):
        response = client.post("/api/teams", json={"max_members": 0})
        assert response.status_code == 422

    def test_join_full_team_returns_conflict(self, client):
        with patch(
            "trailteams.services.team_service.join_team",
            new_callable=AsyncMock,
            side_effect=CapacityExceededError("El equipo está lleno"),
        ):
            response = client.post(f"/api/teams/{TEAM_ID}/join")

        assert response.status_code == 409
        assert response.json() == {"detail": "El equipo está lleno", "kind": "capacity_exceeded"}

    def test_join_second_team_returns_conflict(self, client):
        with patch(
            "trailteams.services.team_service.join_team",
            new_callable=AsyncMock,
            side_effect=DuplicateMembershipError("Ya perteneces a otro equipo"),
        ):
            response = client.post(f"/api/teams/{TEAM_ID}/join")

        assert response.status_code == 409
        assert response.json()["kind"] == "duplicate_membership"

    def test_get_missing_team(self, client):
        with patch(
            "trailteams.services.team_service.get_team",
            new_callable=AsyncMock,
            side_effect=NotFoundError("Equipo no encontrado"),
        ):
            response = client.get(f"/api/teams/{TEAM_ID}")

        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_get_my_team_none(self, client):
        with patch(
            "trailteams.services.team_service.get_user_team",
            new_callable=AsyncMock,
            return_value=None,
        ):
            response = client.get("/api/teams/mine")

        assert response.status_code == 200
        assert response.json() is None

    def test_leave_last_member(self, client):
        with patch(
            "trailteams.services.team_service.leave_team",
            new_callable=AsyncMock,
            return_value={"team_deleted": True, "new_leader_id": None, "team": None},
        ):
            response = client.post(f"/api/teams/{TEAM_ID}/leave")

        assert response.status_code == 200
        assert response.json()["team_deleted"] is True

    def test_update_requires_fields(self, client):
        response = client.patch(f"/api/teams/{TEAM_ID}", json={})
        assert response.status_code == 400

    def test_update_only_touches_sent_fields(self, client):
        with patch(
            "trailteams.services.team_service.update_team_name",
            new_callable=AsyncMock,
            return_value=_team(name="Nuevo", display_name="Nuevo"),
        ) as mock_name, patch(
            "trailteams.services.team_service.update_team_whatsapp_link",
            new_callable=AsyncMock,
        ) as mock_link:
            response = client.patch(f"/api/teams/{TEAM_ID}", json={"name": "Nuevo"})

        assert response.status_code == 200
        assert response.json()["name"] == "Nuevo"
        mock_name.assert_awaited_once()
        mock_link.assert_not_called()

    def test_non_leader_update_is_forbidden(self, client):
        with patch(
            "trailteams.services.team_service.update_team_name",
            new_callable=AsyncMock,
            side_effect=UnauthorizedError("Solo los líderes del equipo pueden cambiar el nombre"),
        ):
            response = client.patch(f"/api/teams/{TEAM_ID}", json={"name": "Motín"})

        assert response.status_code == 403

    def test_delete_team_upstream_failure(self, client):
        with patch(
            "trailteams.services.team_service.delete_team",
            new_callable=AsyncMock,
            side_effect=UpstreamFailureError("No se pudo eliminar el equipo"),
        ):
            response = client.delete(f"/api/teams/{TEAM_ID}")

        assert response.status_code == 502
        assert response.json()["kind"] == "upstream_failure"

    def test_unexpected_error_is_500(self, client):
        with patch(
            "trailteams.services.team_service.get_all_teams",
            new_callable=AsyncMock,
            side_effect=RuntimeError("boom"),
        ):
            response = client.get("/api/teams")

        assert response.status_code == 500


# ============================================================================
# Invitations and join requests
# ============================================================================


class TestInvitationEndpoints:
    def test_send_invitation(self, client):
        invitation = {
            "id": 7,
            "team_id": TEAM_ID,
            "team_name": "Las Magnolias",
            "inviter_id": "user-1",
            "inviter_name": "Caminante",
            "invitee_id": "user-2",
            "invitee_name": "Otra",
            "status": "pending",
            "created_at": "2024-01-01T00:00:00+00:00",
            "responded_at": None,
        }
        with patch(
            "trailteams.services.invitation_service.send_team_invitation",
            new_callable=AsyncMock,
            return_value=invitation,
        ) as mock_send:
            response = client.post(
                f"/api/teams/{TEAM_ID}/invitations", json={"invitee_id": "user-2"}
            )

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert mock_send.call_args.args[1:] == ("user-1", TEAM_ID, "user-2")

    def test_accept_invitation_full_team(self, client):
        with patch(
            "trailteams.services.invitation_service.accept_invitation",
            new_callable=AsyncMock,
            side_effect=CapacityExceededError("El equipo está lleno"),
        ):
            response = client.post("/api/invitations/7/accept")

        assert response.status_code == 409

    def test_list_my_join_requests(self, client):
        with patch(
            "trailteams.services.invitation_service.get_user_join_requests",
            new_callable=AsyncMock,
            return_value=[],
        ):
            response = client.get("/api/join-requests/mine")

        assert response.status_code == 200
        assert response.json() == []


# ============================================================================
# Discovery
# ============================================================================


class TestDiscoveryEndpoints:
    def test_nearby_without_location(self, client):
        with patch(
            "trailteams.services.proximity_service.find_nearby_users",
            new_callable=AsyncMock,
            side_effect=PreconditionMissingError("Configura tu ubicación para buscar compañeros cercanos"),
        ):
            response = client.get("/api/discovery/users")

        assert response.status_code == 422
        assert response.json()["kind"] == "precondition_missing"

    def test_nearby_passes_profile_coordinates(self, client, current_user):
        current_user["profile"] = _profile(latitude=40.4168, longitude=-3.7038)
        with patch(
            "trailteams.services.proximity_service.find_nearby_users",
            new_callable=AsyncMock,
            return_value=[],
        ) as mock_find:
            response = client.get("/api/discovery/users?radius_miles=5")

        assert response.status_code == 200
        args = mock_find.call_args
        assert args.args[1:4] == ("user-1", 40.4168, -3.7038)
        assert args.kwargs["radius_miles"] == 5

    def test_radius_must_be_positive(self, client):
        response = client.get("/api/discovery/teams?radius_miles=0")
        assert response.status_code == 422


# ============================================================================
# Profile and plans
# ============================================================================


class TestProfileEndpoints:
    def test_get_profile(self, client):
        response = client.get("/api/profile")
        assert response.status_code == 200
        assert response.json()["id"] == "user-1"

    def test_location_requires_both_coordinates(self, client):
        response = client.put("/api/profile/location", json={"latitude": 40.0})
        assert response.status_code == 422

    def test_page_access(self, client):
        with patch(
            "trailteams.services.plan_service.get_user_plan",
            new_callable=AsyncMock,
            return_value="basico",
        ):
            response = client.get("/api/profile/access?path=/magnolias-hikes/etapa-1")

        assert response.status_code == 200
        body = response.json()
        assert body["required_plan"] == "completo"
        assert body["can_access"] is False


# ============================================================================
# Admin
# ============================================================================


class TestAdminEndpoints:
    def test_non_admin_is_forbidden(self, client):
        response = client.get("/api/admin/users")
        assert response.status_code == 403

    def test_admin_users(self, client, current_user):
        admin = dict(current_user, is_admin=True)
        app.dependency_overrides[require_admin] = lambda: admin
        users = [{
            "id": "user-2",
            "name": "Ana",
            "user_plan": "basico",
            "email": "N/A",
            "total_points": 53.1,
            "total_km": 3.1,
        }]
        with patch(
            "trailteams.services.admin_service.get_all_users_with_stats",
            new_callable=AsyncMock,
            return_value=users,
        ):
            response = client.get("/api/admin/users")

        assert response.status_code == 200
        assert response.json()[0]["total_points"] == 53.1

    def test_admin_plan_update_rejects_unknown_plan(self, client, current_user):
        app.dependency_overrides[require_admin] = lambda: dict(current_user, is_admin=True)
        response = client.put("/api/admin/users/user-2/plan", json={"plan": "platino"})
        assert response.status_code == 422
