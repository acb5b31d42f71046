"""Invite code route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.api.routes import limiter
from matchday.database.db import get_db_session
from matchday.services import invite_service
from matchday.services.errors import MatchdayError
from matchday.api.auth_dependencies import require_user, make_require_group_admin
from matchday.models.schemas import (
    InviteCreate,
    InviteResponse,
    InviteRedeemRequest,
    JoinGroupResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/groups/{group_id}/invites", response_model=InviteResponse)
async def create_invite(
    group_id: int,
    payload: InviteCreate,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Issue an invite code (admin only)."""
    try:
        return await invite_service.create_invite(
            session,
            group_id=group_id,
            created_by=user["id"],
            max_uses=payload.max_uses,
            expires_at=payload.expires_at,
        )
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error creating invite for group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while creating invite")


@router.get("/api/groups/{group_id}/invites", response_model=List[InviteResponse])
async def list_invites(
    group_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await invite_service.list_invites(session, group_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error listing invites for group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while listing invites")


@router.delete("/api/groups/{group_id}/invites/{invite_id}", response_model=InviteResponse)
async def deactivate_invite(
    group_id: int,
    invite_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Deactivate an invite code (admin only)."""
    try:
        return await invite_service.deactivate_invite(session, group_id, invite_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error deactivating invite %d", invite_id)
        raise HTTPException(status_code=500, detail="Internal error while deactivating invite")


@router.post("/api/invites/redeem", response_model=JoinGroupResponse)
@limiter.limit("10/minute")
async def redeem_invite(
    request: Request,
    payload: InviteRedeemRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a group with an invite code."""
    try:
        return await invite_service.redeem_invite(session, payload.code, user["id"])
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error redeeming invite code")
        raise HTTPException(status_code=500, detail="Internal error while redeeming invite")
