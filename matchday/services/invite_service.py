"""
Invite code issuance and redemption.
"""

import secrets
import logging
from datetime import datetime
from typing import Optional, List, Dict

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import GroupInvite, Group
from matchday.services import membership_service
from matchday.services.errors import (
    InvalidCodeError,
    ExpiredError,
    ExhaustedError,
    BannedError,
    AlreadyMemberError,
    NotFoundError,
    DataValidationError,
)
from matchday.utils.constants import (
    INVITE_CODE_ALPHABET,
    INVITE_CODE_LENGTH,
    UNLIMITED_USES,
    MAX_CODE_GENERATION_ATTEMPTS,
)
from matchday.utils.datetime_utils import utcnow, ensure_utc, isoformat_or_none

logger = logging.getLogger(__name__)


def generate_invite_code() -> str:
    """Generate an 8-character code from the unambiguous alphabet."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _invite_to_dict(invite: GroupInvite) -> Dict:
    return {
        "id": invite.id,
        "group_id": invite.group_id,
        "code": invite.code,
        "max_uses": invite.max_uses,
        "used_count": invite.used_count,
        "expires_at": isoformat_or_none(invite.expires_at),
        "is_active": invite.is_active,
        "created_by": invite.created_by,
        "created_at": isoformat_or_none(invite.created_at),
    }


async def create_invite(
    session: AsyncSession,
    group_id: int,
    created_by: int,
    max_uses: int = UNLIMITED_USES,
    expires_at: Optional[datetime] = None,
) -> Dict:
    """
    Issue a new invite code for a group.

    Args:
        max_uses: Number of redemptions allowed; -1 means unlimited
        expires_at: Optional expiry instant

    Raises:
        DataValidationError: If max_uses is neither -1 nor positive, or
            expires_at is already in the past
    """
    if max_uses != UNLIMITED_USES and max_uses < 1:
        raise DataValidationError("max_uses must be -1 (unlimited) or at least 1")
    if expires_at is not None and ensure_utc(expires_at) <= utcnow():
        raise DataValidationError("Expiry must be in the future")

    await membership_service.get_group_or_404(session, group_id)

    for attempt in range(1, MAX_CODE_GENERATION_ATTEMPTS + 1):
        code = generate_invite_code()
        existing = await session.scalar(select(GroupInvite.id).where(GroupInvite.code == code))
        if existing:
            logger.debug("Invite code collision on attempt %d", attempt)
            continue

        invite = GroupInvite(
            group_id=group_id,
            code=code,
            max_uses=max_uses,
            used_count=0,
            expires_at=expires_at,
            is_active=True,
            created_by=created_by,
        )
        session.add(invite)
        try:
            await session.commit()
        except IntegrityError:
            # Lost a race for the same code
            await session.rollback()
            continue
        await session.refresh(invite)
        logger.info("Created invite %d for group %d (max_uses=%d)", invite.id, group_id, max_uses)
        return _invite_to_dict(invite)

    raise RuntimeError("Could not generate a unique invite code")


async def list_invites(session: AsyncSession, group_id: int) -> List[Dict]:
    await membership_service.get_group_or_404(session, group_id)
    result = await session.execute(
        select(GroupInvite)
        .where(GroupInvite.group_id == group_id)
        .order_by(GroupInvite.created_at.desc(), GroupInvite.id.desc())
    )
    return [_invite_to_dict(invite) for invite in result.scalars().all()]


async def deactivate_invite(session: AsyncSession, group_id: int, invite_id: int) -> Dict:
    result = await session.execute(
        select(GroupInvite).where(GroupInvite.id == invite_id, GroupInvite.group_id == group_id)
    )
    invite = result.scalar_one_or_none()
    if not invite:
        raise NotFoundError("Invite not found")
    invite.is_active = False
    await session.commit()
    logger.info("Deactivated invite %d for group %d", invite_id, group_id)
    return _invite_to_dict(invite)


async def redeem_invite(session: AsyncSession, code: str, user_id: int) -> Dict:
    """
    Redeem an invite code and join its group.

    Checks run in order: unknown/inactive, expired, exhausted, banned,
    already a member. On success the user gets a fresh default profile
    (any leftover from an earlier membership is reset) and the invite's
    usage count is incremented.

    Returns:
        Dict with group_id, group_name, team_player_id
    """
    code = normalize_code(code)
    result = await session.execute(
        select(GroupInvite)
        .where(GroupInvite.code == code, GroupInvite.is_active.is_(True))
        .execution_options(populate_existing=True)
    )
    invite = result.scalar_one_or_none()
    if not invite:
        raise InvalidCodeError("Invalid or expired invite code")

    if invite.expires_at is not None and ensure_utc(invite.expires_at) < utcnow():
        raise ExpiredError("This invite code has expired")

    if invite.max_uses != UNLIMITED_USES and invite.used_count >= invite.max_uses:
        raise ExhaustedError("This invite code has reached its maximum uses")

    group_id = invite.group_id
    if await membership_service.is_banned(session, group_id, user_id):
        raise BannedError("You have been banned from this group")

    if await membership_service.is_member(session, group_id, user_id):
        raise AlreadyMemberError("You are already a member of this group")

    # Conditional increment so two concurrent redemptions cannot both take the last use
    claimed = await session.execute(
        update(GroupInvite)
        .where(
            GroupInvite.id == invite.id,
            or_(
                GroupInvite.max_uses == UNLIMITED_USES,
                GroupInvite.used_count < GroupInvite.max_uses,
            ),
        )
        .values(used_count=GroupInvite.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        await session.rollback()
        raise ExhaustedError("This invite code has reached its maximum uses")

    try:
        profile = await membership_service.admit_member(session, group_id, user_id)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise AlreadyMemberError("You are already a member of this group")

    group = await session.get(Group, group_id)
    logger.info("User %d redeemed invite %d for group %d", user_id, invite.id, group_id)
    return {"group_id": group_id, "group_name": group.name, "team_player_id": profile.id}
