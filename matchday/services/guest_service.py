"""
Guest player provisioning.

Guests are synthetic users with no login. They get a generated placeholder
email on the guest domain so every listing and export can tell them apart
from real members.
"""

import logging
import secrets
from typing import Dict, List

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import User, GroupMember, TeamPlayer
from matchday.services import membership_service
from matchday.services.errors import DataValidationError
from matchday.utils.constants import GUEST_EMAIL_DOMAIN, MAX_NAME_LENGTH
from matchday.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

GUEST_EMAIL_SUFFIX = f"@{GUEST_EMAIL_DOMAIN}"


def make_guest_email(name: str) -> str:
    """Build a unique placeholder address, e.g. ``jane.doe.guest-1718000000000a1b2@temp.local``."""
    local = ".".join(name.strip().lower().split())
    stamp = int(utcnow().timestamp() * 1000)
    return f"{local}.guest-{stamp}{secrets.token_hex(2)}{GUEST_EMAIL_SUFFIX}"


def is_guest_email(email: str) -> bool:
    return bool(email) and email.lower().endswith(GUEST_EMAIL_SUFFIX)


def is_guest_user(user: User) -> bool:
    """A user is a guest if flagged as one or carrying a guest-domain email."""
    return bool(user.is_guest) or is_guest_email(user.email)


def validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise DataValidationError("Name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise DataValidationError(f"Name must be {MAX_NAME_LENGTH} characters or fewer")
    return name


async def add_guest(session: AsyncSession, group_id: int, name: str) -> Dict:
    """
    Create a guest user, add them to the group, and give them a default profile.

    Args:
        session: Database session
        group_id: Group to add the guest to
        name: Display name

    Returns:
        Dict with user_id, team_player_id, name, email
    """
    name = validate_name(name)
    await membership_service.get_group_or_404(session, group_id)

    user = User(name=name, email=make_guest_email(name), is_guest=True)
    session.add(user)
    await session.flush()

    profile = await membership_service.admit_member(session, group_id, user.id)
    await session.commit()

    logger.info("Added guest user %d '%s' to group %d", user.id, name, group_id)
    return {
        "user_id": user.id,
        "team_player_id": profile.id,
        "name": user.name,
        "email": user.email,
        "is_guest": True,
    }


async def list_guests(session: AsyncSession, group_id: int) -> List[Dict]:
    """List guest members of a group, oldest first."""
    await membership_service.get_group_or_404(session, group_id)
    result = await session.execute(
        select(User, GroupMember.joined_at, TeamPlayer.id)
        .join(GroupMember, GroupMember.user_id == User.id)
        .outerjoin(
            TeamPlayer,
            (TeamPlayer.user_id == User.id) & (TeamPlayer.group_id == GroupMember.group_id),
        )
        .where(
            GroupMember.group_id == group_id,
            or_(User.is_guest.is_(True), User.email.like(f"%{GUEST_EMAIL_SUFFIX}")),
        )
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    return [
        {
            "user_id": user.id,
            "team_player_id": team_player_id,
            "name": user.name,
            "email": user.email,
            "joined_at": joined_at.isoformat() if joined_at else None,
        }
        for user, joined_at, team_player_id in result.all()
    ]
