"""
Unit tests for proximity discovery.

Profiles are placed around central Madrid; roughly 0.0145 degrees of
latitude is one mile.
"""

import pytest
import pytest_asyncio

from trailteams.services import proximity_service, team_service
from trailteams.services.errors import PreconditionMissingError
from trailteams.services.privileged_service import PrivilegedResult
from trailteams.tests.conftest import FakeGateway, create_profile, create_team_row

MADRID = (40.4168, -3.7038)


@pytest_asyncio.fixture
async def neighbourhood(db_session):
    """Caller at the centre, neighbours at ~1, ~3 and ~8 miles, one in Barcelona, one without location."""
    await create_profile(db_session, "me", name="Yo", latitude=MADRID[0], longitude=MADRID[1])
    await create_profile(db_session, "near", name="Cerca", latitude=40.4313, longitude=-3.7038)
    await create_profile(db_session, "mid", name="Medio", latitude=40.4603, longitude=-3.7038)
    await create_profile(db_session, "far", name="Lejos", latitude=40.5328, longitude=-3.7038)
    await create_profile(db_session, "bcn", name="Barcelona", latitude=41.3874, longitude=2.1686)
    await create_profile(db_session, "nowhere", name="Sin Ubicación")


@pytest.mark.asyncio
async def test_nearby_users_sorted_and_filtered(db_session, neighbourhood):
    users = await proximity_service.find_nearby_users(db_session, "me", *MADRID, radius_miles=10)

    assert [u["id"] for u in users] == ["near", "mid", "far"]
    distances = [u["distance_miles"] for u in users]
    assert distances == sorted(distances)
    assert 0.9 < distances[0] < 1.1
    assert all(u["team_id"] is None and u["is_team_leader"] is False for u in users)


@pytest.mark.asyncio
async def test_nearby_users_respects_radius(db_session, neighbourhood):
    users = await proximity_service.find_nearby_users(db_session, "me", *MADRID, radius_miles=5)
    assert [u["id"] for u in users] == ["near", "mid"]


@pytest.mark.asyncio
async def test_nearby_users_excludes_caller(db_session, neighbourhood):
    users = await proximity_service.find_nearby_users(db_session, "near", 40.4313, -3.7038, radius_miles=500)
    ids = [u["id"] for u in users]
    assert "near" not in ids
    assert "me" in ids
    assert "bcn" in ids
    assert "nowhere" not in ids


@pytest.mark.asyncio
async def test_nearby_users_without_location_raises(db_session, neighbourhood):
    with pytest.raises(PreconditionMissingError, match="Configura tu ubicación"):
        await proximity_service.find_nearby_users(db_session, "nowhere", None, None)


@pytest.mark.asyncio
async def test_nearby_users_include_team_info(db_session, neighbourhood):
    team = await team_service.create_team(db_session, "near", name="Cercanos", max_members=6)
    await team_service.join_team(db_session, "mid", team["id"])

    users = await proximity_service.find_nearby_users(db_session, "me", *MADRID)
    by_id = {u["id"]: u for u in users}
    assert by_id["near"]["team_name"] == "Cercanos"
    assert by_id["near"]["is_team_leader"] is True
    assert by_id["near"]["team_max_members"] == 14
    assert by_id["mid"]["is_team_leader"] is False
    assert by_id["far"]["team_id"] is None


@pytest.mark.asyncio
async def test_nearby_users_prefer_privileged_memberships(db_session, neighbourhood):
    gateway = FakeGateway({
        "get_user_team_memberships": PrivilegedResult.ok([
            {"user_id": "far", "team_id": "t-123456789", "team_name": None, "role": "leader", "max_members": 20},
        ]),
    })
    users = await proximity_service.find_nearby_users(db_session, "me", *MADRID, gateway=gateway)
    by_id = {u["id"]: u for u in users}
    assert by_id["far"]["team_name"] == "Equipo t-123456"
    assert by_id["far"]["team_max_members"] == 20
    assert by_id["near"]["team_id"] is None


@pytest.mark.asyncio
async def test_nearby_users_fall_back_when_privileged_fails(db_session, neighbourhood):
    await team_service.create_team(db_session, "mid", name="Medios")
    gateway = FakeGateway({"get_user_team_memberships": PrivilegedResult.error("boom")})

    users = await proximity_service.find_nearby_users(db_session, "me", *MADRID, gateway=gateway)
    assert {u["id"]: u["team_name"] for u in users}["mid"] == "Medios"


# ──────────────────────────────────────────────────────────────
# Available teams
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_available_teams_by_nearest_member(db_session, neighbourhood):
    close_team = await team_service.create_team(db_session, "near", name="Cerca FC")
    far_team = await team_service.create_team(db_session, "far", name="Lejos FC")
    await team_service.join_team(db_session, "bcn", far_team["id"])

    teams = await proximity_service.find_available_teams(db_session, "me", *MADRID)
    assert [t["id"] for t in teams] == [close_team["id"], far_team["id"]]
    assert teams[1]["member_count"] == 2
    assert teams[1]["capacity_label"] == "2 de 14 miembros"


@pytest.mark.asyncio
async def test_available_teams_skip_full_and_own_team(db_session, neighbourhood):
    fillers = [f"filler{i:02d}" for i in range(13)]
    for user_id in fillers:
        await create_profile(db_session, user_id)
    await create_team_row(db_session, "near", name="Llenos", members=fillers)
    own = await team_service.create_team(db_session, "me", name="Mío")
    await team_service.join_team(db_session, "mid", own["id"])

    teams = await proximity_service.find_available_teams(db_session, "me", *MADRID)
    assert teams == []


@pytest.mark.asyncio
async def test_available_teams_requires_location(db_session, neighbourhood):
    with pytest.raises(PreconditionMissingError):
        await proximity_service.find_available_teams(db_session, "nowhere", None, None)


@pytest.mark.asyncio
async def test_available_teams_exclude_every_team_of_the_caller(db_session, neighbourhood):
    own = await team_service.create_team(db_session, "me", name="Mío")
    other = await team_service.create_team(db_session, "near", name="Cerca FC")
    await team_service.add_user_to_team(db_session, "me", other["id"])
    assert await team_service.get_membership(db_session, own["id"], "me") is not None

    teams = await proximity_service.find_available_teams(db_session, "me", *MADRID)
    assert teams == []


@pytest.mark.asyncio
async def test_user_at_the_reference_point_is_included(db_session, neighbourhood):
    await create_profile(db_session, "vecino", name="Vecino", latitude=MADRID[0], longitude=MADRID[1])

    users = await proximity_service.find_nearby_users(db_session, "me", *MADRID, radius_miles=10)
    ids = [u["id"] for u in users]
    assert ids[0] == "vecino"
    assert users[0]["distance_miles"] == 0.0
    assert "me" not in ids
