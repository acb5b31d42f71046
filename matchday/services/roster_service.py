"""
Roster service layer.

Owns match capacity accounting and the join/leave/waiting-list transitions
for a single match. Registration is open only until teams are created;
admin removals backfill from the head of the waiting list, self-service
leaves do not.
"""

import logging
from typing import Optional, List, Dict

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import (
    Match,
    Team,
    MatchPlayer,
    MatchWaitingList,
    TeamPlayer,
    User,
)
from matchday.services import membership_service, guest_service
from matchday.services.errors import (
    NotFoundError,
    NotAuthorizedError,
    AlreadyRegisteredError,
    MatchClosedError,
    TeamsLockedError,
    CapacityExceededError,
)

logger = logging.getLogger(__name__)

REGISTERED = "registered"
WAITING = "waiting"


async def get_match_or_404(session: AsyncSession, match_id: int, for_update: bool = False) -> Match:
    """
    Load a match, optionally locking its row for the rest of the transaction.

    The lock serializes concurrent admissions to the same match on backends
    that support SELECT ... FOR UPDATE.
    """
    stmt = select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    match = result.scalar_one_or_none()
    if not match:
        raise NotFoundError("Match not found")
    return match


async def team_count(session: AsyncSession, match_id: int) -> int:
    count = await session.scalar(select(func.count(Team.id)).where(Team.match_id == match_id))
    return count or 0


async def roster_count(session: AsyncSession, match_id: int) -> int:
    count = await session.scalar(
        select(func.count(MatchPlayer.id)).where(MatchPlayer.match_id == match_id)
    )
    return count or 0


async def waiting_count(session: AsyncSession, match_id: int) -> int:
    count = await session.scalar(
        select(func.count(MatchWaitingList.id)).where(MatchWaitingList.match_id == match_id)
    )
    return count or 0


def compute_capacity(match: Match, teams: int) -> int:
    """
    Roster capacity: planned teams x players per team before formation,
    actual team count x players per team after.
    """
    if match.teams_created and teams:
        return teams * match.max_players_per_team
    return match.planned_teams * match.max_players_per_team


async def get_capacity(session: AsyncSession, match: Match) -> int:
    teams = await team_count(session, match.id) if match.teams_created else 0
    return compute_capacity(match, teams)


def ensure_registration_open(match: Match) -> None:
    """Join/leave window closes once team formation begins."""
    if match.teams_finalized:
        raise MatchClosedError("Teams have been finalized for this match")
    if match.teams_created:
        raise TeamsLockedError("Teams have already been created for this match")


async def _ensure_not_registered(session: AsyncSession, match_id: int, team_player_id: int):
    on_roster = await session.scalar(
        select(MatchPlayer.id).where(
            MatchPlayer.match_id == match_id, MatchPlayer.team_player_id == team_player_id
        )
    )
    if on_roster:
        raise AlreadyRegisteredError("Player is already registered for this match")
    waiting = await session.scalar(
        select(MatchWaitingList.id).where(
            MatchWaitingList.match_id == match_id,
            MatchWaitingList.team_player_id == team_player_id,
        )
    )
    if waiting:
        raise AlreadyRegisteredError("Player is already on the waiting list for this match")


async def _admit(session: AsyncSession, match: Match, team_player_id: int) -> Dict:
    """Insert onto the roster if there is room, otherwise onto the waiting list."""
    count = await roster_count(session, match.id)
    capacity = await get_capacity(session, match)

    if count < capacity:
        entry = MatchPlayer(match_id=match.id, team_player_id=team_player_id, team_id=None)
        status = REGISTERED
    else:
        entry = MatchWaitingList(match_id=match.id, team_player_id=team_player_id)
        status = WAITING
    session.add(entry)

    try:
        await session.commit()
    except IntegrityError:
        # A concurrent request admitted the same profile first
        await session.rollback()
        raise AlreadyRegisteredError("Player is already registered for this match")

    response = {"match_id": match.id, "team_player_id": team_player_id, "status": status}
    if status == REGISTERED:
        response["match_player_id"] = entry.id
        logger.info("Profile %d joined match %d (%d/%d)", team_player_id, match.id, count + 1, capacity)
    else:
        response["waiting_list_id"] = entry.id
        response["position"] = await waiting_count(session, match.id)
        logger.info(
            "Profile %d added to waiting list of match %d at position %d",
            team_player_id, match.id, response["position"],
        )
    return response


async def _get_member_profile(session: AsyncSession, group_id: int, user_id: int) -> TeamPlayer:
    profile = await membership_service.get_profile(session, group_id, user_id)
    if not profile or not await membership_service.is_member(session, group_id, user_id):
        raise NotAuthorizedError("You must be a member of this group to join its matches")
    return profile


async def join_match(session: AsyncSession, match_id: int, user_id: int) -> Dict:
    """
    Register the acting user for a match.

    Lands on the roster while there is room, otherwise on the waiting list.

    Raises:
        MatchClosedError: If teams are finalized
        TeamsLockedError: If teams have been created
        AlreadyRegisteredError: If already on the roster or waiting list
    """
    match = await get_match_or_404(session, match_id, for_update=True)
    ensure_registration_open(match)
    profile = await _get_member_profile(session, match.group_id, user_id)
    await _ensure_not_registered(session, match.id, profile.id)
    return await _admit(session, match, profile.id)


async def leave_match(session: AsyncSession, match_id: int, user_id: int) -> Dict:
    """
    Withdraw the acting user from a match's roster and waiting list.

    Does not promote anyone from the waiting list.
    """
    match = await get_match_or_404(session, match_id, for_update=True)
    if match.teams_created:
        raise TeamsLockedError("You cannot leave a match after teams have been created")

    profile = await _get_member_profile(session, match.group_id, user_id)
    roster_result = await session.execute(
        delete(MatchPlayer).where(
            MatchPlayer.match_id == match.id, MatchPlayer.team_player_id == profile.id
        )
    )
    waiting_result = await session.execute(
        delete(MatchWaitingList).where(
            MatchWaitingList.match_id == match.id, MatchWaitingList.team_player_id == profile.id
        )
    )
    if roster_result.rowcount == 0 and waiting_result.rowcount == 0:
        raise NotFoundError("You are not registered for this match")
    await session.commit()

    logger.info("Profile %d left match %d", profile.id, match.id)
    return {
        "match_id": match.id,
        "team_player_id": profile.id,
        "removed_from_roster": roster_result.rowcount > 0,
        "removed_from_waiting_list": waiting_result.rowcount > 0,
    }


async def add_player(session: AsyncSession, match_id: int, team_player_id: int) -> Dict:
    """Admin-driven admission of any group member's profile (same rules as join)."""
    match = await get_match_or_404(session, match_id, for_update=True)
    ensure_registration_open(match)

    profile = await session.get(TeamPlayer, team_player_id)
    if (
        not profile
        or profile.group_id != match.group_id
        or not await membership_service.is_member(session, match.group_id, profile.user_id)
    ):
        raise NotFoundError("Player not found in this group")

    await _ensure_not_registered(session, match.id, profile.id)
    return await _admit(session, match, profile.id)


async def add_guest_name(session: AsyncSession, match_id: int, name: str) -> Dict:
    """
    Put a one-off named guest on the roster.

    Name-only guests have no profile and cannot wait, so a full roster
    rejects them outright.
    """
    name = guest_service.validate_name(name)
    match = await get_match_or_404(session, match_id, for_update=True)
    ensure_registration_open(match)

    count = await roster_count(session, match.id)
    capacity = await get_capacity(session, match)
    if count >= capacity:
        raise CapacityExceededError("Match is full")

    entry = MatchPlayer(match_id=match.id, guest_name=name, team_id=None)
    session.add(entry)
    await session.commit()

    logger.info("Guest '%s' added to match %d", name, match.id)
    return {"match_id": match.id, "match_player_id": entry.id, "guest_name": name, "status": REGISTERED}


async def _smallest_team_id(session: AsyncSession, match_id: int) -> Optional[int]:
    """Team of the match with the fewest roster entries (lowest id on ties)."""
    entries = func.count(MatchPlayer.id)
    result = await session.execute(
        select(Team.id)
        .outerjoin(MatchPlayer, MatchPlayer.team_id == Team.id)
        .where(Team.match_id == match_id)
        .group_by(Team.id)
        .order_by(entries.asc(), Team.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _pop_waiting_list_head(session: AsyncSession, match_id: int) -> Optional[MatchWaitingList]:
    result = await session.execute(
        select(MatchWaitingList)
        .where(MatchWaitingList.match_id == match_id)
        .order_by(MatchWaitingList.joined_at.asc(), MatchWaitingList.id.asc())
        .limit(1)
    )
    head = result.scalar_one_or_none()
    if head:
        await session.delete(head)
    return head


async def remove_player(session: AsyncSession, match_id: int, match_player_id: int) -> Dict:
    """
    Remove a roster entry (admin only) and backfill from the waiting list.

    The deletion and the promotion of the waiting-list head commit together.
    Once teams exist, the promoted player takes the vacated team slot.

    Returns:
        Dict with removed_match_player_id and promoted (None or the new entry)
    """
    match = await get_match_or_404(session, match_id, for_update=True)
    if match.teams_finalized:
        raise MatchClosedError("Teams have been finalized for this match")

    entry = await session.get(MatchPlayer, match_player_id)
    if not entry or entry.match_id != match.id:
        raise NotFoundError("Player is not on this match's roster")

    vacated_team_id = entry.team_id
    await session.delete(entry)
    await session.flush()

    promoted = None
    if await roster_count(session, match.id) < await get_capacity(session, match):
        head = await _pop_waiting_list_head(session, match.id)
        if head:
            team_id = None
            if match.teams_created:
                team_id = vacated_team_id or await _smallest_team_id(session, match.id)
            new_entry = MatchPlayer(
                match_id=match.id, team_player_id=head.team_player_id, team_id=team_id
            )
            session.add(new_entry)
            await session.flush()
            promoted = {
                "match_player_id": new_entry.id,
                "team_player_id": head.team_player_id,
                "team_id": team_id,
            }

    await session.commit()

    if promoted:
        logger.info(
            "Removed entry %d from match %d and promoted profile %d from waiting list",
            match_player_id, match.id, promoted["team_player_id"],
        )
    else:
        logger.info("Removed entry %d from match %d", match_player_id, match.id)
    return {"removed_match_player_id": match_player_id, "promoted": promoted}


async def move_from_waiting_list(
    session: AsyncSession, match_id: int, waiting_list_id: int, team_id: Optional[int] = None
) -> Dict:
    """
    Admin moves a waiting-list entry onto the roster, optionally into a team.

    Once teams exist and no team is given, the entry joins the smallest team.
    """
    match = await get_match_or_404(session, match_id, for_update=True)
    if match.teams_finalized:
        raise MatchClosedError("Teams have been finalized for this match")

    waiting = await session.get(MatchWaitingList, waiting_list_id)
    if not waiting or waiting.match_id != match.id:
        raise NotFoundError("Waiting list entry not found")

    if team_id is not None:
        team = await session.get(Team, team_id)
        if not team or team.match_id != match.id:
            raise NotFoundError("Team not found for this match")

    if await roster_count(session, match.id) >= await get_capacity(session, match):
        raise CapacityExceededError("Match is full")

    if team_id is None and match.teams_created:
        team_id = await _smallest_team_id(session, match.id)

    team_player_id = waiting.team_player_id
    await session.delete(waiting)
    await session.flush()
    entry = MatchPlayer(match_id=match.id, team_player_id=team_player_id, team_id=team_id)
    session.add(entry)
    await session.commit()

    logger.info("Moved profile %d from waiting list into match %d", team_player_id, match.id)
    return {
        "match_id": match.id,
        "match_player_id": entry.id,
        "team_player_id": team_player_id,
        "team_id": team_id,
        "status": REGISTERED,
    }


async def get_roster(session: AsyncSession, match_id: int) -> List[Dict]:
    """Roster entries in admission order with player names."""
    result = await session.execute(
        select(MatchPlayer, TeamPlayer, User)
        .outerjoin(TeamPlayer, TeamPlayer.id == MatchPlayer.team_player_id)
        .outerjoin(User, User.id == TeamPlayer.user_id)
        .where(MatchPlayer.match_id == match_id)
        .order_by(MatchPlayer.joined_at.asc(), MatchPlayer.id.asc())
    )
    roster = []
    for entry, profile, user in result.all():
        roster.append(
            {
                "match_player_id": entry.id,
                "team_player_id": entry.team_player_id,
                "user_id": user.id if user else None,
                "name": user.name if user else entry.guest_name,
                "guest_name": entry.guest_name,
                "is_guest": entry.guest_name is not None or guest_service.is_guest_user(user),
                "rating": profile.rating if profile else None,
                "preferred_position": profile.preferred_position if profile else None,
                "is_key_player": profile.is_key_player if profile else False,
                "team_id": entry.team_id,
            }
        )
    return roster


async def get_waiting_list(session: AsyncSession, match_id: int) -> List[Dict]:
    """Waiting-list entries in FIFO order."""
    result = await session.execute(
        select(MatchWaitingList, User)
        .join(TeamPlayer, TeamPlayer.id == MatchWaitingList.team_player_id)
        .join(User, User.id == TeamPlayer.user_id)
        .where(MatchWaitingList.match_id == match_id)
        .order_by(MatchWaitingList.joined_at.asc(), MatchWaitingList.id.asc())
    )
    return [
        {
            "waiting_list_id": entry.id,
            "team_player_id": entry.team_player_id,
            "user_id": user.id,
            "name": user.name,
            "position": position,
            "joined_at": entry.joined_at.isoformat() if entry.joined_at else None,
        }
        for position, (entry, user) in enumerate(result.all(), start=1)
    ]
