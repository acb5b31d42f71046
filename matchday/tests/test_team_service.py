"""
Tests for team formation: naming, team-count rules, create/randomize/finalize
transitions and the team visibility rule of the match detail view.
"""

import random
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select, func

from matchday.database.models import User, Team, MatchPlayer
from matchday.services import (
    team_service,
    roster_service,
    group_service,
    match_service,
    membership_service,
)
from matchday.services.errors import (
    EmptyRosterError,
    AlreadyFormedError,
    NotYetFormedError,
    LockedError,
)
from matchday.utils.datetime_utils import utcnow


class TestTeamName:
    def test_first_letters(self):
        assert team_service.team_name(0) == "Team A"
        assert team_service.team_name(1) == "Team B"
        assert team_service.team_name(25) == "Team Z"

    def test_wraps_to_two_letters(self):
        assert team_service.team_name(26) == "Team AA"
        assert team_service.team_name(27) == "Team AB"


class TestComputeTeamCount:
    def test_small_roster_uses_minimum_of_two(self):
        assert team_service.compute_team_count(1, 4, 5) == 2
        assert team_service.compute_team_count(4, 4, 5) == 2

    def test_prefers_teams_of_at_least_three(self):
        assert team_service.compute_team_count(7, 4, 5) == 3
        assert team_service.compute_team_count(9, 4, 5) == 3

    def test_capped_at_planned_teams(self):
        assert team_service.compute_team_count(20, 4, 5) == 4
        assert team_service.compute_team_count(12, 2, 6) == 2
        assert team_service.compute_team_count(7, 2, 5) == 2

    def test_over_capacity_adds_teams(self):
        assert team_service.compute_team_count(11, 2, 5) == 3


def test_assign_round_robin_is_balanced():
    class Entry:
        team_id = None

    players = [Entry() for _ in range(7)]
    team_service.assign_round_robin(players, [10, 20, 30], random.Random(3))

    sizes = sorted(sum(1 for p in players if p.team_id == t) for t in (10, 20, 30))
    assert sizes == [2, 2, 3]


async def _create_user(db_session, name):
    user = User(name=name, email=f"{name.lower().replace(' ', '.')}@example.com")
    db_session.add(user)
    await db_session.flush()
    return user.id


@pytest_asyncio.fixture
async def setup(db_session):
    """A group with an owner, one extra admin, two plain members and an open match."""
    owner_id = await _create_user(db_session, "Owner")
    group = await group_service.create_group(db_session, owner_id, "Friday Five")

    member_ids = []
    for i in range(2):
        uid = await _create_user(db_session, f"Member {i + 1}")
        await membership_service.admit_member(db_session, group["id"], uid)
        member_ids.append(uid)
    admin_id = await _create_user(db_session, "Second Admin")
    await membership_service.admit_member(db_session, group["id"], admin_id)
    await db_session.commit()
    await group_service.promote_member(db_session, group["id"], admin_id)

    match = await match_service.create_match(
        db_session,
        group_id=group["id"],
        created_by=owner_id,
        date_time=utcnow() + timedelta(days=1),
        max_players_per_team=5,
        planned_teams=4,
    )
    return {
        "group_id": group["id"],
        "owner_id": owner_id,
        "admin_id": admin_id,
        "member_ids": member_ids,
        "match_id": match["id"],
    }


async def _fill_roster(db_session, setup, count):
    """Helper: put ``count`` named guests on the roster."""
    for i in range(count):
        await roster_service.add_guest_name(db_session, setup["match_id"], f"Guest {i + 1}")


@pytest.mark.asyncio
async def test_create_teams_with_seven_players(db_session, setup):
    await _fill_roster(db_session, setup, 7)

    result = await team_service.create_teams(db_session, setup["match_id"], rng=random.Random(1))

    assert result["teams_created"] is True
    assert result["teams_finalized"] is False
    assert [team["name"] for team in result["teams"]] == ["Team A", "Team B", "Team C"]
    assert sorted(len(team["players"]) for team in result["teams"]) == [2, 2, 3]
    assert result["unassigned"] == []

    assigned = [p["match_player_id"] for team in result["teams"] for p in team["players"]]
    assert len(assigned) == len(set(assigned)) == 7


@pytest.mark.asyncio
async def test_create_teams_with_four_players_makes_two_pairs(db_session, setup):
    await _fill_roster(db_session, setup, 4)
    result = await team_service.create_teams(db_session, setup["match_id"])
    assert [len(team["players"]) for team in result["teams"]] == [2, 2]


@pytest.mark.asyncio
async def test_create_teams_splits_seven_into_two_when_two_planned(db_session, setup):
    created = await match_service.create_match(
        db_session,
        group_id=setup["group_id"],
        created_by=setup["owner_id"],
        date_time=utcnow() + timedelta(days=1),
        max_players_per_team=5,
        planned_teams=2,
    )
    for i in range(7):
        await roster_service.add_guest_name(db_session, created["id"], f"Guest {i + 1}")

    result = await team_service.create_teams(db_session, created["id"])
    assert sorted(len(team["players"]) for team in result["teams"]) == [3, 4]
    assert result["unassigned"] == []


@pytest.mark.asyncio
async def test_create_teams_on_empty_roster_raises(db_session, setup):
    with pytest.raises(EmptyRosterError):
        await team_service.create_teams(db_session, setup["match_id"])

    match = await roster_service.get_match_or_404(db_session, setup["match_id"])
    assert match.teams_created is False


@pytest.mark.asyncio
async def test_create_teams_twice_raises_already_formed(db_session, setup):
    await _fill_roster(db_session, setup, 6)
    first = await team_service.create_teams(db_session, setup["match_id"])

    with pytest.raises(AlreadyFormedError):
        await team_service.create_teams(db_session, setup["match_id"])

    again = await team_service.get_teams(db_session, setup["match_id"])
    assert [t["id"] for t in again["teams"]] == [t["id"] for t in first["teams"]]


@pytest.mark.asyncio
async def test_randomize_keeps_team_count_and_assigns_everyone(db_session, setup):
    await _fill_roster(db_session, setup, 9)
    created = await team_service.create_teams(db_session, setup["match_id"])

    result = await team_service.randomize_teams(
        db_session, setup["match_id"], rng=random.Random(42)
    )
    assert [t["id"] for t in result["teams"]] == [t["id"] for t in created["teams"]]
    assert sorted(len(t["players"]) for t in result["teams"]) == [3, 3, 3]
    assert result["unassigned"] == []


@pytest.mark.asyncio
async def test_randomize_before_formation_raises(db_session, setup):
    await _fill_roster(db_session, setup, 4)
    with pytest.raises(NotYetFormedError):
        await team_service.randomize_teams(db_session, setup["match_id"])


@pytest.mark.asyncio
async def test_finalize_before_formation_raises(db_session, setup):
    with pytest.raises(NotYetFormedError):
        await team_service.finalize_teams(db_session, setup["match_id"])


@pytest.mark.asyncio
async def test_finalized_teams_are_locked(db_session, setup):
    await _fill_roster(db_session, setup, 6)
    await team_service.create_teams(db_session, setup["match_id"])

    result = await team_service.finalize_teams(db_session, setup["match_id"])
    assert result["teams_finalized"] is True

    with pytest.raises(LockedError):
        await team_service.randomize_teams(db_session, setup["match_id"])
    with pytest.raises(LockedError):
        await team_service.finalize_teams(db_session, setup["match_id"])
    with pytest.raises(AlreadyFormedError):
        await team_service.create_teams(db_session, setup["match_id"])


# ──────────────────────────────────────────────────────────────
# Formation is all-or-nothing
# ──────────────────────────────────────────────────────────────


async def _team_count(db_session, match_id):
    return await db_session.scalar(select(func.count(Team.id)).where(Team.match_id == match_id))


async def _assigned_count(db_session, match_id):
    return await db_session.scalar(
        select(func.count(MatchPlayer.id)).where(
            MatchPlayer.match_id == match_id, MatchPlayer.team_id.is_not(None)
        )
    )


@pytest.mark.asyncio
async def test_failed_formation_leaves_nothing_behind(db_session, setup, monkeypatch):
    await _fill_roster(db_session, setup, 5)

    def _fail(players, team_ids, rng=None):
        players[0].team_id = team_ids[0]
        raise RuntimeError("assignment failed")

    monkeypatch.setattr(team_service, "assign_round_robin", _fail)
    with pytest.raises(RuntimeError, match="assignment failed"):
        await team_service.create_teams(db_session, setup["match_id"])

    assert await _team_count(db_session, setup["match_id"]) == 0
    assert await _assigned_count(db_session, setup["match_id"]) == 0
    match = await roster_service.get_match_or_404(db_session, setup["match_id"])
    assert match.teams_created is False

    monkeypatch.undo()
    result = await team_service.create_teams(db_session, setup["match_id"])
    assigned = [p["match_player_id"] for team in result["teams"] for p in team["players"]]
    assert len(assigned) == len(set(assigned)) == 5
    assert result["unassigned"] == []


@pytest.mark.asyncio
async def test_create_teams_discards_leftover_teams(db_session, setup):
    await _fill_roster(db_session, setup, 4)
    stale = Team(match_id=setup["match_id"], name="Stale")
    db_session.add(stale)
    await db_session.flush()
    entry = await db_session.scalar(
        select(MatchPlayer).where(MatchPlayer.match_id == setup["match_id"]).limit(1)
    )
    entry.team_id = stale.id
    await db_session.commit()

    result = await team_service.create_teams(db_session, setup["match_id"])

    assert [team["name"] for team in result["teams"]] == ["Team A", "Team B"]
    assert [len(team["players"]) for team in result["teams"]] == [2, 2]
    assert result["unassigned"] == []
    assert await db_session.scalar(
        select(func.count(Team.id)).where(
            Team.match_id == setup["match_id"], Team.name == "Stale"
        )
    ) == 0
    assert await _team_count(db_session, setup["match_id"]) == 2


# ──────────────────────────────────────────────────────────────
# Team visibility
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_plain_member_cannot_see_teams_before_finalization(db_session, setup):
    await _fill_roster(db_session, setup, 6)
    await team_service.create_teams(db_session, setup["match_id"])

    view = await match_service.get_match_details(
        db_session, setup["match_id"], setup["member_ids"][0]
    )
    assert view["can_see_teams"] is False
    assert view["teams"] is None
    assert view["team_count"] == 2
    assert all(entry["team_id"] is None for entry in view["roster"])
    assert view["player_count"] == 6


@pytest.mark.asyncio
async def test_creator_and_admins_see_teams_before_finalization(db_session, setup):
    await _fill_roster(db_session, setup, 6)
    await team_service.create_teams(db_session, setup["match_id"])

    for viewer in (setup["owner_id"], setup["admin_id"]):
        view = await match_service.get_match_details(db_session, setup["match_id"], viewer)
        assert view["can_see_teams"] is True
        assert len(view["teams"]) == 2
        assert all(entry["team_id"] is not None for entry in view["roster"])


@pytest.mark.asyncio
async def test_everyone_sees_teams_after_finalization(db_session, setup):
    await _fill_roster(db_session, setup, 6)
    await team_service.create_teams(db_session, setup["match_id"])
    await team_service.finalize_teams(db_session, setup["match_id"])

    view = await match_service.get_match_details(
        db_session, setup["match_id"], setup["member_ids"][1]
    )
    assert view["can_see_teams"] is True
    assert len(view["teams"]) == 2
