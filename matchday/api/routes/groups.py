"""Group, membership and player profile route handlers."""

import logging
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.api.routes import limiter
from matchday.database.db import get_db_session
from matchday.services import group_service, import_export_service
from matchday.services.errors import MatchdayError
from matchday.api.auth_dependencies import (
    require_user,
    make_require_group_member,
    make_require_group_admin,
    make_require_group_owner,
)
from matchday.models.schemas import (
    GroupCreate,
    GroupUpdate,
    GroupResponse,
    GroupStatsResponse,
    JoinGroupResponse,
    MemberResponse,
    PlayerProfileUpdate,
    ImportRequest,
    ImportSummaryResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Group lifecycle
# ---------------------------------------------------------------------------


@router.post("/api/groups", response_model=GroupResponse)
async def create_group(
    payload: GroupCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a group; the creator becomes its owner."""
    try:
        return await group_service.create_group(
            session,
            user_id=user["id"],
            name=payload.name,
            description=payload.description,
            privacy=payload.privacy,
        )
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error creating group")
        raise HTTPException(status_code=500, detail="Internal error while creating group")


@router.get("/api/groups", response_model=List[GroupResponse])
async def list_my_groups(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List groups the current user belongs to."""
    try:
        return await group_service.list_user_groups(session, user["id"])
    except Exception:
        logger.exception("Error listing groups")
        raise HTTPException(status_code=500, detail="Internal error while listing groups")


@router.get("/api/groups/public", response_model=List[GroupResponse])
async def list_public_groups(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List public groups the current user can join."""
    try:
        return await group_service.list_public_groups(session, user["id"])
    except Exception:
        logger.exception("Error listing public groups")
        raise HTTPException(status_code=500, detail="Internal error while listing public groups")


@router.get("/api/groups/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: int,
    user: dict = Depends(make_require_group_member()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await group_service.get_group(session, group_id, user["id"])
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error loading group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while loading group")


@router.put("/api/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: int,
    payload: GroupUpdate,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Update group settings (admin only)."""
    try:
        return await group_service.update_group(
            session,
            group_id,
            name=payload.name,
            description=payload.description,
            privacy=payload.privacy,
        )
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error updating group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while updating group")


@router.delete("/api/groups/{group_id}")
async def delete_group(
    group_id: int,
    user: dict = Depends(make_require_group_owner()),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a group and everything in it (owner only)."""
    try:
        await group_service.delete_group(session, group_id)
        return {"status": "success", "message": "Group deleted"}
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error deleting group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while deleting group")


@router.get("/api/groups/{group_id}/stats", response_model=GroupStatsResponse)
async def get_group_stats(
    group_id: int,
    user: dict = Depends(make_require_group_member()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await group_service.get_group_stats(session, group_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error loading stats for group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while loading group stats")


# ---------------------------------------------------------------------------
# Joining and leaving
# ---------------------------------------------------------------------------


@router.post("/api/groups/{group_id}/join", response_model=JoinGroupResponse)
@limiter.limit("10/minute")
async def join_group(
    request: Request,
    group_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a public group without an invite."""
    try:
        return await group_service.join_public_group(session, group_id, user["id"])
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error joining group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while joining group")


@router.post("/api/groups/{group_id}/leave")
async def leave_group(
    group_id: int,
    user: dict = Depends(make_require_group_member()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await group_service.leave_group(session, group_id, user["id"])
        return {"status": "success", "message": "You have left the group"}
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error leaving group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while leaving group")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.get("/api/groups/{group_id}/members", response_model=List[MemberResponse])
async def list_members(
    group_id: int,
    user: dict = Depends(make_require_group_member()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await group_service.list_members(session, group_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error listing members of group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while listing members")


@router.delete("/api/groups/{group_id}/members/{user_id}")
async def remove_member(
    group_id: int,
    user_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a member from the group (admin only)."""
    try:
        await group_service.remove_member(session, group_id, user_id)
        return {"status": "success", "message": "Member removed"}
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error removing user %d from group %d", user_id, group_id)
        raise HTTPException(status_code=500, detail="Internal error while removing member")


@router.post("/api/groups/{group_id}/members/{user_id}/promote")
async def promote_member(
    group_id: int,
    user_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Make a member an admin (admin only)."""
    try:
        return await group_service.promote_member(session, group_id, user_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error promoting user %d in group %d", user_id, group_id)
        raise HTTPException(status_code=500, detail="Internal error while promoting member")


@router.post("/api/groups/{group_id}/members/{user_id}/demote")
async def demote_member(
    group_id: int,
    user_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Revoke admin from a member (admin only; not the owner)."""
    try:
        return await group_service.demote_member(session, group_id, user_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error demoting user %d in group %d", user_id, group_id)
        raise HTTPException(status_code=500, detail="Internal error while demoting member")


@router.post("/api/groups/{group_id}/members/{user_id}/ban")
async def ban_member(
    group_id: int,
    user_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a member and block them from rejoining (admin only)."""
    try:
        await group_service.ban_member(session, group_id, user_id, banned_by=user["id"])
        return {"status": "success", "message": "Member banned"}
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error banning user %d from group %d", user_id, group_id)
        raise HTTPException(status_code=500, detail="Internal error while banning member")


@router.delete("/api/groups/{group_id}/bans/{user_id}")
async def unban_member(
    group_id: int,
    user_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await group_service.unban_member(session, group_id, user_id)
        return {"status": "success", "message": "Ban lifted"}
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error unbanning user %d from group %d", user_id, group_id)
        raise HTTPException(status_code=500, detail="Internal error while lifting ban")


@router.patch("/api/groups/{group_id}/members/{user_id}/profile")
async def update_player_profile(
    group_id: int,
    user_id: int,
    payload: PlayerProfileUpdate,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit a member's rating, position, key-player flag or name (admin only)."""
    try:
        return await group_service.update_player_profile(
            session,
            group_id,
            user_id,
            name=payload.name,
            rating=payload.rating,
            preferred_position=payload.preferred_position,
            is_key_player=payload.is_key_player,
        )
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error updating profile of user %d in group %d", user_id, group_id)
        raise HTTPException(status_code=500, detail="Internal error while updating profile")


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


@router.get("/api/groups/{group_id}/export")
async def export_players(
    group_id: int,
    format: Literal["json", "csv"] = "json",
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Export the group's players as JSON or CSV (admin only)."""
    try:
        document = await import_export_service.export_group_players(session, group_id)
        if format == "csv":
            return Response(
                content=import_export_service.players_to_csv(document["players"]),
                media_type="text/csv",
                headers={
                    "Content-Disposition": f'attachment; filename="group-{group_id}-players.csv"'
                },
            )
        return document
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error exporting players of group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while exporting players")


@router.post("/api/groups/{group_id}/import", response_model=ImportSummaryResponse)
async def import_players(
    group_id: int,
    payload: ImportRequest,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Bulk import players from JSON or CSV content (admin only)."""
    try:
        records = import_export_service.parse_import_payload(payload.content, payload.format)
        return await import_export_service.import_players(session, group_id, records)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error importing players into group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while importing players")
