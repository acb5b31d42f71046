"""Match, roster and team formation route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.db import get_db_session
from matchday.services import match_service, roster_service, team_service
from matchday.services.errors import MatchdayError
from matchday.api.auth_dependencies import (
    make_require_group_member,
    make_require_group_admin,
    make_require_match_member,
    make_require_match_admin,
)
from matchday.models.schemas import (
    MatchCreate,
    MatchSummaryResponse,
    AddPlayerRequest,
    AddGuestNameRequest,
    MoveFromWaitingListRequest,
    RosterActionResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


@router.post("/api/groups/{group_id}/matches", response_model=MatchSummaryResponse)
async def create_match(
    group_id: int,
    payload: MatchCreate,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Schedule a match (admin only)."""
    try:
        return await match_service.create_match(
            session,
            group_id=group_id,
            created_by=user["id"],
            date_time=payload.date_time,
            location=payload.location,
            max_players_per_team=payload.max_players_per_team,
            planned_teams=payload.planned_teams,
        )
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error creating match in group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while creating match")


@router.get("/api/groups/{group_id}/matches", response_model=List[MatchSummaryResponse])
async def list_matches(
    group_id: int,
    upcoming: bool = False,
    user: dict = Depends(make_require_group_member()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await match_service.list_group_matches(session, group_id, upcoming_only=upcoming)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error listing matches of group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while listing matches")


@router.get("/api/matches/{match_id}")
async def get_match(
    match_id: int,
    user: dict = Depends(make_require_match_member()),
    session: AsyncSession = Depends(get_db_session),
):
    """Match details; team assignments stay hidden from players until finalized."""
    try:
        return await match_service.get_match_details(session, match_id, user["id"])
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error loading match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while loading match")


@router.delete("/api/matches/{match_id}")
async def delete_match(
    match_id: int,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await match_service.delete_match(session, match_id)
        return {"status": "success", "message": "Match deleted"}
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error deleting match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while deleting match")


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------


@router.post("/api/matches/{match_id}/join", response_model=RosterActionResponse)
async def join_match(
    match_id: int,
    user: dict = Depends(make_require_match_member()),
    session: AsyncSession = Depends(get_db_session),
):
    """Register for a match, or join its waiting list when full."""
    try:
        return await roster_service.join_match(session, match_id, user["id"])
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error joining match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while joining match")


@router.post("/api/matches/{match_id}/leave")
async def leave_match(
    match_id: int,
    user: dict = Depends(make_require_match_member()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await roster_service.leave_match(session, match_id, user["id"])
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error leaving match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while leaving match")


@router.post("/api/matches/{match_id}/players", response_model=RosterActionResponse)
async def add_player(
    match_id: int,
    payload: AddPlayerRequest,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a group member's profile to the match (admin only)."""
    try:
        return await roster_service.add_player(session, match_id, payload.team_player_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error adding player to match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while adding player")


@router.post("/api/matches/{match_id}/guests", response_model=RosterActionResponse)
async def add_guest_name(
    match_id: int,
    payload: AddGuestNameRequest,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a named one-off guest to the roster (admin only)."""
    try:
        return await roster_service.add_guest_name(session, match_id, payload.name)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error adding guest to match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while adding guest")


@router.delete("/api/matches/{match_id}/players/{match_player_id}")
async def remove_player(
    match_id: int,
    match_player_id: int,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a roster entry and promote the head of the waiting list (admin only)."""
    try:
        return await roster_service.remove_player(session, match_id, match_player_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error removing entry %d from match %d", match_player_id, match_id)
        raise HTTPException(status_code=500, detail="Internal error while removing player")


@router.post(
    "/api/matches/{match_id}/waiting-list/{waiting_list_id}/promote",
    response_model=RosterActionResponse,
)
async def move_from_waiting_list(
    match_id: int,
    waiting_list_id: int,
    payload: Optional[MoveFromWaitingListRequest] = None,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Move a waiting-list entry onto the roster (admin only)."""
    try:
        return await roster_service.move_from_waiting_list(
            session, match_id, waiting_list_id, team_id=payload.team_id if payload else None
        )
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error promoting waiting entry %d in match %d", waiting_list_id, match_id)
        raise HTTPException(status_code=500, detail="Internal error while promoting player")


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


@router.post("/api/matches/{match_id}/teams")
async def create_teams(
    match_id: int,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Split the roster into teams (admin only)."""
    try:
        return await team_service.create_teams(session, match_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error creating teams for match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while creating teams")


@router.post("/api/matches/{match_id}/teams/randomize")
async def randomize_teams(
    match_id: int,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await team_service.randomize_teams(session, match_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error randomizing teams for match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while randomizing teams")


@router.post("/api/matches/{match_id}/teams/finalize")
async def finalize_teams(
    match_id: int,
    user: dict = Depends(make_require_match_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Lock teams and show them to all members (admin only)."""
    try:
        return await team_service.finalize_teams(session, match_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error finalizing teams for match %d", match_id)
        raise HTTPException(status_code=500, detail="Internal error while finalizing teams")
