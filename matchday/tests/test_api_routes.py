"""
End-to-end tests for the HTTP API.

Requests go through the real routers, dependencies and services against a
throwaway SQLite file; identities are minted with the same token helper
the identity provider integration uses.
"""

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from matchday.api.main import app
from matchday.database.db import Base, get_db_session
from matchday.services import auth_service
from matchday.utils.datetime_utils import utcnow


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================


@pytest.fixture
def client(tmp_path):
    """TestClient wired to a fresh SQLite database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)

    async def _create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_schema())
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async def _override_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _override_session
    yield TestClient(app)
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


def auth_headers(name):
    """Bearer headers for an identity named ``name``."""
    slug = name.lower().replace(" ", ".")
    token = auth_service.create_access_token(
        {"sub": f"auth|{slug}", "name": name, "email": f"{slug}@example.com"}
    )
    return {"Authorization": f"Bearer {token}"}


def create_group(client, owner="Owner", **payload):
    payload.setdefault("name", "Tuesday Night Football")
    response = client.post("/api/groups", json=payload, headers=auth_headers(owner))
    assert response.status_code == 200, response.text
    return response.json()


def invite_and_join(client, group_id, names, owner="Owner"):
    invite = client.post(
        f"/api/groups/{group_id}/invites", json={}, headers=auth_headers(owner)
    ).json()
    for name in names:
        response = client.post(
            "/api/invites/redeem", json={"code": invite["code"]}, headers=auth_headers(name)
        )
        assert response.status_code == 200, response.text
    return invite


def create_match(client, group_id, owner="Owner", **payload):
    payload.setdefault("date_time", (utcnow() + timedelta(days=1)).isoformat())
    payload.setdefault("max_players_per_team", 5)
    payload.setdefault("planned_teams", 2)
    response = client.post(
        f"/api/groups/{group_id}/matches", json=payload, headers=auth_headers(owner)
    )
    assert response.status_code == 200, response.text
    return response.json()


# ============================================================================
# Auth and health
# ============================================================================


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_token_is_unauthorized(client):
    assert client.get("/api/groups").status_code == 401


def test_invalid_token_is_unauthorized(client):
    response = client.get("/api/groups", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


# ============================================================================
# Groups and invites
# ============================================================================


class TestGroupEndpoints:
    def test_create_and_list_groups(self, client):
        group = create_group(client)
        assert group["is_owner"] is True

        listed = client.get("/api/groups", headers=auth_headers("Owner")).json()
        assert [g["id"] for g in listed] == [group["id"]]

    def test_outsider_cannot_view_group(self, client):
        group = create_group(client)
        response = client.get(f"/api/groups/{group['id']}", headers=auth_headers("Outsider"))
        assert response.status_code == 403

    def test_missing_group_is_not_found(self, client):
        create_group(client)
        response = client.get("/api/groups/999", headers=auth_headers("Owner"))
        assert response.status_code == 404

    def test_only_owner_can_delete_group(self, client):
        group = create_group(client)
        invite_and_join(client, group["id"], ["Deputy"])
        members = client.get(
            f"/api/groups/{group['id']}/members", headers=auth_headers("Owner")
        ).json()
        deputy_id = next(m["user_id"] for m in members if m["name"] == "Deputy")
        promoted = client.post(
            f"/api/groups/{group['id']}/members/{deputy_id}/promote", headers=auth_headers("Owner")
        )
        assert promoted.status_code == 200

        response = client.delete(f"/api/groups/{group['id']}", headers=auth_headers("Deputy"))
        assert response.status_code == 403
        response = client.delete(f"/api/groups/{group['id']}", headers=auth_headers("Owner"))
        assert response.status_code == 200

    def test_public_group_join(self, client):
        group = create_group(client, privacy="public")
        response = client.post(f"/api/groups/{group['id']}/join", headers=auth_headers("Walker"))
        assert response.status_code == 200
        response = client.post(f"/api/groups/{group['id']}/join", headers=auth_headers("Walker"))
        assert response.status_code == 409

    def test_single_use_invite(self, client):
        group = create_group(client)
        invite = client.post(
            f"/api/groups/{group['id']}/invites", json={"max_uses": 1}, headers=auth_headers("Owner")
        ).json()

        first = client.post(
            "/api/invites/redeem", json={"code": invite["code"].lower()}, headers=auth_headers("Ann")
        )
        assert first.status_code == 200
        assert first.json()["group_id"] == group["id"]

        second = client.post(
            "/api/invites/redeem", json={"code": invite["code"]}, headers=auth_headers("Ben")
        )
        assert second.status_code == 410

        unknown = client.post(
            "/api/invites/redeem", json={"code": "ZZZZZZZZ"}, headers=auth_headers("Ben")
        )
        assert unknown.status_code == 404

    def test_invite_requires_admin(self, client):
        group = create_group(client)
        invite_and_join(client, group["id"], ["Member"])
        response = client.post(
            f"/api/groups/{group['id']}/invites", json={}, headers=auth_headers("Member")
        )
        assert response.status_code == 403

    def test_profile_update_validation(self, client):
        group = create_group(client)
        invite_and_join(client, group["id"], ["Member"])
        members = client.get(
            f"/api/groups/{group['id']}/members", headers=auth_headers("Owner")
        ).json()
        member_id = next(m["user_id"] for m in members if m["name"] == "Member")

        url = f"/api/groups/{group['id']}/members/{member_id}/profile"
        assert client.patch(url, json={}, headers=auth_headers("Owner")).status_code == 422
        assert client.patch(url, json={"rating": 11}, headers=auth_headers("Owner")).status_code == 422

        response = client.patch(
            url, json={"rating": 9, "preferred_position": "GK"}, headers=auth_headers("Owner")
        )
        assert response.status_code == 200
        assert response.json()["rating"] == 9

    def test_export_csv(self, client):
        group = create_group(client)
        client.post(
            f"/api/groups/{group['id']}/guests", json={"name": "Guest Gary"}, headers=auth_headers("Owner")
        )
        response = client.get(
            f"/api/groups/{group['id']}/export?format=csv", headers=auth_headers("Owner")
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "Guest Gary" in response.text

    def test_import_json(self, client):
        group = create_group(client)
        content = '[{"name": "Ann", "email": "ann@example.com", "rating": 7}, {"name": "No Mail"}]'
        response = client.post(
            f"/api/groups/{group['id']}/import",
            json={"format": "json", "content": content},
            headers=auth_headers("Owner"),
        )
        assert response.status_code == 200
        summary = response.json()
        assert summary["success_count"] == 1
        assert summary["error_count"] == 1


# ============================================================================
# Matches, roster and teams
# ============================================================================


class TestMatchEndpoints:
    def test_match_flow_with_hidden_then_published_teams(self, client):
        group = create_group(client)
        players = [f"Player {i}" for i in range(1, 8)]
        invite_and_join(client, group["id"], players)
        match = create_match(client, group["id"])
        assert match["capacity"] == 10

        for name in players:
            response = client.post(f"/api/matches/{match['id']}/join", headers=auth_headers(name))
            assert response.status_code == 200
            assert response.json()["status"] == "registered"

        duplicate = client.post(f"/api/matches/{match['id']}/join", headers=auth_headers("Player 1"))
        assert duplicate.status_code == 409

        forbidden = client.post(f"/api/matches/{match['id']}/teams", headers=auth_headers("Player 1"))
        assert forbidden.status_code == 403

        teams = client.post(f"/api/matches/{match['id']}/teams", headers=auth_headers("Owner"))
        assert teams.status_code == 200
        assert len(teams.json()["teams"]) == 2

        hidden = client.get(f"/api/matches/{match['id']}", headers=auth_headers("Player 2")).json()
        assert hidden["can_see_teams"] is False
        assert hidden["teams"] is None

        late = client.post(f"/api/matches/{match['id']}/leave", headers=auth_headers("Player 3"))
        assert late.status_code == 409

        finalized = client.post(
            f"/api/matches/{match['id']}/teams/finalize", headers=auth_headers("Owner")
        )
        assert finalized.status_code == 200

        shown = client.get(f"/api/matches/{match['id']}", headers=auth_headers("Player 2")).json()
        assert shown["can_see_teams"] is True
        assert sum(len(t["players"]) for t in shown["teams"]) == 7

        again = client.post(
            f"/api/matches/{match['id']}/teams/randomize", headers=auth_headers("Owner")
        )
        assert again.status_code == 409

    def test_waiting_list_promotion_on_admin_removal(self, client):
        group = create_group(client)
        players = ["Ann", "Ben", "Cat"]
        invite_and_join(client, group["id"], players)
        match = create_match(client, group["id"], max_players_per_team=1)

        results = [
            client.post(f"/api/matches/{match['id']}/join", headers=auth_headers(name)).json()
            for name in players
        ]
        assert [r["status"] for r in results] == ["registered", "registered", "waiting"]

        response = client.delete(
            f"/api/matches/{match['id']}/players/{results[0]['match_player_id']}",
            headers=auth_headers("Owner"),
        )
        assert response.status_code == 200
        assert response.json()["promoted"]["team_player_id"] == results[2]["team_player_id"]

    def test_create_teams_on_empty_roster(self, client):
        group = create_group(client)
        match = create_match(client, group["id"])
        response = client.post(f"/api/matches/{match['id']}/teams", headers=auth_headers("Owner"))
        assert response.status_code == 400

    def test_match_validation(self, client):
        group = create_group(client)
        response = client.post(
            f"/api/groups/{group['id']}/matches",
            json={
                "date_time": (utcnow() + timedelta(days=1)).isoformat(),
                "max_players_per_team": 5,
                "planned_teams": 1,
            },
            headers=auth_headers("Owner"),
        )
        assert response.status_code == 422

    def test_unknown_match_is_not_found(self, client):
        create_group(client)
        response = client.get("/api/matches/404", headers=auth_headers("Owner"))
        assert response.status_code == 404
