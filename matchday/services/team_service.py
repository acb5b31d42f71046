"""
Team formation service layer.

Partitions a match roster into named teams, reshuffles existing teams, and
finalizes them. Each operation runs as one transaction so a half-assigned
roster is never committed.
"""

import math
import random
import logging
from typing import Optional, List, Dict, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import Match, Team, MatchPlayer
from matchday.services import roster_service
from matchday.services.errors import (
    EmptyRosterError,
    AlreadyFormedError,
    NotYetFormedError,
    LockedError,
)
from matchday.utils.constants import MIN_TEAMS, MIN_PLAYERS_PER_TEAM

logger = logging.getLogger(__name__)


def team_name(index: int) -> str:
    """
    Sequential team name for a zero-based index.

    >>> team_name(0), team_name(1), team_name(25), team_name(26)
    ('Team A', 'Team B', 'Team Z', 'Team AA')
    """
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return f"Team {letters}"


def compute_team_count(total_players: int, planned_teams: int, max_players_per_team: int) -> int:
    """
    Number of teams to form for a roster.

    Within capacity, aim for teams of at least three players without
    exceeding the planned count. Over capacity (admin overrides), add as
    many teams as needed to respect the per-team maximum. Never fewer
    than two.
    """
    if total_players <= planned_teams * max_players_per_team:
        return max(MIN_TEAMS, min(planned_teams, math.ceil(total_players / MIN_PLAYERS_PER_TEAM)))
    return max(MIN_TEAMS, math.ceil(total_players / max_players_per_team))


def assign_round_robin(
    players: Sequence[MatchPlayer], team_ids: Sequence[int], rng: Optional[random.Random] = None
) -> None:
    """Shuffle the players uniformly and deal them out to the teams in turn."""
    shuffled = list(players)
    (rng or random).shuffle(shuffled)
    for i, player in enumerate(shuffled):
        player.team_id = team_ids[i % len(team_ids)]


async def _load_roster(session: AsyncSession, match_id: int) -> List[MatchPlayer]:
    result = await session.execute(
        select(MatchPlayer)
        .where(MatchPlayer.match_id == match_id)
        .order_by(MatchPlayer.id.asc())
    )
    return list(result.scalars().all())


async def _load_teams(session: AsyncSession, match_id: int) -> List[Team]:
    result = await session.execute(
        select(Team).where(Team.match_id == match_id).order_by(Team.id.asc())
    )
    return list(result.scalars().all())


async def create_teams(
    session: AsyncSession, match_id: int, rng: Optional[random.Random] = None
) -> Dict:
    """
    Form teams from the current roster.

    Any stale teams are cleared first, then the computed number of teams is
    created and every roster entry is assigned to exactly one of them.

    Raises:
        EmptyRosterError: If nobody is on the roster
        AlreadyFormedError: If teams were already created
    """
    match = await roster_service.get_match_or_404(session, match_id, for_update=True)
    players = await _load_roster(session, match.id)
    if not players:
        raise EmptyRosterError("Cannot create teams without any players")
    if match.teams_created:
        raise AlreadyFormedError("Teams have already been created for this match")

    number_of_teams = compute_team_count(
        len(players), match.planned_teams, match.max_players_per_team
    )

    try:
        for player in players:
            player.team_id = None
        await session.flush()
        await session.execute(delete(Team).where(Team.match_id == match.id))

        teams = [Team(match_id=match.id, name=team_name(i)) for i in range(number_of_teams)]
        session.add_all(teams)
        await session.flush()

        assign_round_robin(players, [team.id for team in teams], rng)
        match.teams_created = True
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Created %d teams for match %d from %d players", number_of_teams, match.id, len(players)
    )
    return await get_teams(session, match.id)


async def randomize_teams(
    session: AsyncSession, match_id: int, rng: Optional[random.Random] = None
) -> Dict:
    """
    Reshuffle the roster across the existing teams (team count unchanged).

    Raises:
        NotYetFormedError: If teams have not been created
        LockedError: If teams are finalized
    """
    match = await roster_service.get_match_or_404(session, match_id, for_update=True)
    if not match.teams_created:
        raise NotYetFormedError("Teams have not been created yet")
    if match.teams_finalized:
        raise LockedError("Teams are finalized and can no longer be changed")

    teams = await _load_teams(session, match.id)
    if not teams:
        raise NotYetFormedError("Teams have not been created yet")
    players = await _load_roster(session, match.id)

    try:
        assign_round_robin(players, [team.id for team in teams], rng)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("Randomized %d players across %d teams for match %d", len(players), len(teams), match.id)
    return await get_teams(session, match.id)


async def finalize_teams(session: AsyncSession, match_id: int) -> Dict:
    """
    Lock the teams and publish them to every group member.

    Raises:
        NotYetFormedError: If teams have not been created
        LockedError: If already finalized
    """
    match = await roster_service.get_match_or_404(session, match_id, for_update=True)
    if not match.teams_created:
        raise NotYetFormedError("Teams have not been created yet")
    if match.teams_finalized:
        raise LockedError("Teams are already finalized")

    match.teams_finalized = True
    await session.commit()

    logger.info("Finalized teams for match %d", match.id)
    return await get_teams(session, match.id)


async def get_teams(session: AsyncSession, match_id: int) -> Dict:
    """Teams with their assigned roster entries, plus unassigned entries."""
    match = await roster_service.get_match_or_404(session, match_id)
    teams = await _load_teams(session, match_id)
    roster = await roster_service.get_roster(session, match_id)

    by_team = {team.id: [] for team in teams}
    unassigned = []
    for entry in roster:
        if entry["team_id"] in by_team:
            by_team[entry["team_id"]].append(entry)
        else:
            unassigned.append(entry)

    return {
        "match_id": match.id,
        "teams_created": match.teams_created,
        "teams_finalized": match.teams_finalized,
        "teams": [
            {"id": team.id, "name": team.name, "players": by_team[team.id]} for team in teams
        ],
        "unassigned": unassigned,
    }
