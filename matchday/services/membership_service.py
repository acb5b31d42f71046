"""
Membership primitives shared by the group, invite, guest and import services.

Owns the membership model the roster logic depends on: who belongs to a
group, who administers it, who owns it, who is banned, and each member's
per-group player profile.
"""

import logging
from typing import Optional

from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import (
    Group,
    GroupMember,
    GroupAdmin,
    GroupBan,
    TeamPlayer,
    Match,
    MatchPlayer,
    MatchWaitingList,
    PlayerRole,
)
from matchday.services.errors import NotFoundError
from matchday.utils.constants import DEFAULT_RATING, DEFAULT_POSITION, DEFAULT_ROLE

logger = logging.getLogger(__name__)


async def get_group_or_404(session: AsyncSession, group_id: int) -> Group:
    """Load a group or raise NotFoundError."""
    result = await session.execute(select(Group).where(Group.id == group_id))
    group = result.scalar_one_or_none()
    if not group:
        raise NotFoundError("Group not found")
    return group


async def is_member(session: AsyncSession, group_id: int, user_id: int) -> bool:
    result = await session.execute(
        select(GroupMember.id).where(
            GroupMember.group_id == group_id, GroupMember.user_id == user_id
        )
    )
    return result.scalar_one_or_none() is not None


async def is_admin(session: AsyncSession, group_id: int, user_id: int) -> bool:
    result = await session.execute(
        select(GroupAdmin.id).where(GroupAdmin.group_id == group_id, GroupAdmin.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def is_banned(session: AsyncSession, group_id: int, user_id: int) -> bool:
    result = await session.execute(
        select(GroupBan.id).where(GroupBan.group_id == group_id, GroupBan.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def get_owner_id(session: AsyncSession, group_id: int) -> Optional[int]:
    """
    Return the owner's user id: the chronologically first admin.

    Ties on created_at (second-resolution clocks) fall back to insertion order.
    """
    result = await session.execute(
        select(GroupAdmin.user_id)
        .where(GroupAdmin.group_id == group_id)
        .order_by(GroupAdmin.created_at.asc(), GroupAdmin.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_admin_ids(session: AsyncSession, group_id: int) -> set:
    result = await session.execute(
        select(GroupAdmin.user_id).where(GroupAdmin.group_id == group_id)
    )
    return set(result.scalars().all())


async def get_profile(
    session: AsyncSession, group_id: int, user_id: int
) -> Optional[TeamPlayer]:
    """Get the player profile for a user in a group, if any."""
    result = await session.execute(
        select(TeamPlayer).where(TeamPlayer.group_id == group_id, TeamPlayer.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def admit_member(
    session: AsyncSession, group_id: int, user_id: int, role: str = DEFAULT_ROLE
) -> TeamPlayer:
    """
    Add a membership with a fresh player profile.

    Leftovers from a previous membership are discarded: any admin relation
    is removed and an existing profile is reset to the defaults. The caller
    owns the transaction (no commit here).

    Returns:
        The reset or newly created TeamPlayer
    """
    await session.execute(
        delete(GroupAdmin).where(GroupAdmin.group_id == group_id, GroupAdmin.user_id == user_id)
    )

    profile = await get_profile(session, group_id, user_id)
    if profile:
        profile.rating = DEFAULT_RATING
        profile.preferred_position = DEFAULT_POSITION
        profile.is_key_player = False
        profile.role = role
        logger.info("Reset leftover profile %d for user %d in group %d", profile.id, user_id, group_id)
    else:
        profile = TeamPlayer(
            user_id=user_id,
            group_id=group_id,
            rating=DEFAULT_RATING,
            preferred_position=DEFAULT_POSITION,
            is_key_player=False,
            role=role,
        )
        session.add(profile)

    if role == PlayerRole.ADMIN.value:
        session.add(GroupAdmin(group_id=group_id, user_id=user_id))

    session.add(GroupMember(group_id=group_id, user_id=user_id))
    await session.flush()
    return profile


async def purge_match_entries(
    session: AsyncSession, group_id: int, team_player_id: int, open_matches_only: bool = False
) -> None:
    """
    Delete a profile's roster and waiting-list rows across a group's matches.

    Args:
        open_matches_only: Only touch rosters of matches whose teams have not
            been created yet. Waiting-list rows are always removed.
    """
    group_matches = select(Match.id).where(Match.group_id == group_id)
    roster_matches = group_matches
    if open_matches_only:
        roster_matches = group_matches.where(Match.teams_created.is_(False))

    await session.execute(
        delete(MatchWaitingList).where(
            and_(
                MatchWaitingList.team_player_id == team_player_id,
                MatchWaitingList.match_id.in_(group_matches),
            )
        )
    )
    await session.execute(
        delete(MatchPlayer).where(
            and_(
                MatchPlayer.team_player_id == team_player_id,
                MatchPlayer.match_id.in_(roster_matches),
            )
        )
    )


async def drop_membership(
    session: AsyncSession, group_id: int, user_id: int, keep_profile: bool
) -> None:
    """
    Remove a user's membership and admin relation from a group.

    With ``keep_profile`` the profile survives (and is reset on rejoin) and
    only open-match rosters are vacated; otherwise every roster entry and the
    profile itself are deleted. The caller owns the transaction.
    """
    profile = await get_profile(session, group_id, user_id)
    if profile:
        await purge_match_entries(
            session, group_id, profile.id, open_matches_only=keep_profile
        )
        if not keep_profile:
            await session.delete(profile)

    await session.execute(
        delete(GroupAdmin).where(GroupAdmin.group_id == group_id, GroupAdmin.user_id == user_id)
    )
    await session.execute(
        delete(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    await session.flush()
