"""Guest player route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.db import get_db_session
from matchday.services import guest_service
from matchday.services.errors import MatchdayError
from matchday.api.auth_dependencies import make_require_group_admin
from matchday.models.schemas import GuestCreate, GuestResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/groups/{group_id}/guests", response_model=GuestResponse)
async def add_guest(
    group_id: int,
    payload: GuestCreate,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a guest player in the group (admin only)."""
    try:
        return await guest_service.add_guest(session, group_id, payload.name)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error adding guest to group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while adding guest")


@router.get("/api/groups/{group_id}/guests", response_model=List[GuestResponse])
async def list_guests(
    group_id: int,
    user: dict = Depends(make_require_group_admin()),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await guest_service.list_guests(session, group_id)
    except MatchdayError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error listing guests of group %d", group_id)
        raise HTTPException(status_code=500, detail="Internal error while listing guests")
