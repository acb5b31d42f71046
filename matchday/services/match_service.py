"""
Match scheduling service layer.

Create, list, view and delete matches within a group. The detail view
applies the team visibility rule: until teams are finalized only admins
and the match creator see who is on which team.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import Match, Team, MatchPlayer, MatchWaitingList
from matchday.services import membership_service, roster_service, team_service
from matchday.services.errors import DataValidationError
from matchday.utils.constants import MIN_TEAMS
from matchday.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _match_to_dict(match: Match) -> Dict:
    return {
        "id": match.id,
        "group_id": match.group_id,
        "created_by": match.created_by,
        "date_time": match.date_time.isoformat() if match.date_time else None,
        "location": match.location,
        "max_players_per_team": match.max_players_per_team,
        "planned_teams": match.planned_teams,
        "teams_created": match.teams_created,
        "teams_finalized": match.teams_finalized,
    }


async def create_match(
    session: AsyncSession,
    group_id: int,
    created_by: int,
    date_time: datetime,
    max_players_per_team: int,
    planned_teams: int,
    location: Optional[str] = None,
) -> Dict:
    """Schedule a match in a group. It starts open for registration."""
    if max_players_per_team < 1:
        raise DataValidationError("max_players_per_team must be at least 1")
    if planned_teams < MIN_TEAMS:
        raise DataValidationError(f"planned_teams must be at least {MIN_TEAMS}")
    await membership_service.get_group_or_404(session, group_id)

    match = Match(
        group_id=group_id,
        created_by=created_by,
        date_time=date_time,
        location=location.strip() if location else None,
        max_players_per_team=max_players_per_team,
        planned_teams=planned_teams,
        teams_created=False,
        teams_finalized=False,
    )
    session.add(match)
    await session.commit()

    logger.info(
        "Created match %d in group %d (%d teams x %d players)",
        match.id, group_id, planned_teams, max_players_per_team,
    )
    return {
        **_match_to_dict(match),
        "capacity": planned_teams * max_players_per_team,
        "player_count": 0,
        "waiting_count": 0,
    }


async def list_group_matches(
    session: AsyncSession, group_id: int, upcoming_only: bool = False
) -> List[Dict]:
    """Matches of a group ordered by kick-off, with roster counts and capacity."""
    await membership_service.get_group_or_404(session, group_id)

    player_counts = (
        select(MatchPlayer.match_id, func.count(MatchPlayer.id).label("n"))
        .group_by(MatchPlayer.match_id)
        .subquery()
    )
    waiting_counts = (
        select(MatchWaitingList.match_id, func.count(MatchWaitingList.id).label("n"))
        .group_by(MatchWaitingList.match_id)
        .subquery()
    )
    team_counts = (
        select(Team.match_id, func.count(Team.id).label("n")).group_by(Team.match_id).subquery()
    )

    stmt = (
        select(Match, player_counts.c.n, waiting_counts.c.n, team_counts.c.n)
        .outerjoin(player_counts, player_counts.c.match_id == Match.id)
        .outerjoin(waiting_counts, waiting_counts.c.match_id == Match.id)
        .outerjoin(team_counts, team_counts.c.match_id == Match.id)
        .where(Match.group_id == group_id)
        .order_by(Match.date_time.asc(), Match.id.asc())
    )
    if upcoming_only:
        stmt = stmt.where(Match.date_time > utcnow())

    result = await session.execute(stmt)
    return [
        {
            **_match_to_dict(match),
            "capacity": roster_service.compute_capacity(match, teams or 0),
            "player_count": players or 0,
            "waiting_count": waiting or 0,
            "team_count": teams or 0,
        }
        for match, players, waiting, teams in result.all()
    ]


async def get_match_details(session: AsyncSession, match_id: int, viewer_id: int) -> Dict:
    """
    Full match view for a group member.

    Before finalization, viewers who are neither group admins nor the match
    creator get team and player counts but no team assignments.
    """
    match = await roster_service.get_match_or_404(session, match_id)
    can_see_teams = (
        match.teams_finalized
        or match.created_by == viewer_id
        or await membership_service.is_admin(session, match.group_id, viewer_id)
    )

    teams_view = await team_service.get_teams(session, match.id)
    roster = [entry for team in teams_view["teams"] for entry in team["players"]]
    roster += teams_view["unassigned"]
    roster.sort(key=lambda entry: entry["match_player_id"])
    waiting_list = await roster_service.get_waiting_list(session, match.id)
    team_total = len(teams_view["teams"])

    details = {
        **_match_to_dict(match),
        "capacity": roster_service.compute_capacity(match, team_total),
        "player_count": len(roster),
        "waiting_count": len(waiting_list),
        "team_count": team_total,
        "can_see_teams": bool(can_see_teams),
        "waiting_list": waiting_list,
    }
    if can_see_teams:
        details["roster"] = roster
        details["teams"] = teams_view["teams"]
    else:
        details["roster"] = [{**entry, "team_id": None} for entry in roster]
        details["teams"] = None
    return details


async def delete_match(session: AsyncSession, match_id: int) -> None:
    """Delete a match with its teams, roster and waiting list (admin only)."""
    match = await roster_service.get_match_or_404(session, match_id)
    await session.execute(delete(MatchWaitingList).where(MatchWaitingList.match_id == match.id))
    await session.execute(delete(MatchPlayer).where(MatchPlayer.match_id == match.id))
    await session.execute(delete(Team).where(Team.match_id == match.id))
    await session.execute(delete(Match).where(Match.id == match.id))
    await session.commit()
    logger.info("Deleted match %d", match_id)
