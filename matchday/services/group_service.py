"""
Group administration service layer.

Handles group lifecycle (create, update, delete, stats), public joins and
voluntary leaves, member listing, removal and bans, admin promotion and
demotion, and per-group player profile edits.
"""

import logging
from typing import Optional, List, Dict

from sqlalchemy import select, delete, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import (
    Group,
    GroupMember,
    GroupAdmin,
    GroupBan,
    GroupInvite,
    GroupPrivacy,
    TeamPlayer,
    User,
    Match,
    Team,
    MatchPlayer,
    MatchWaitingList,
    PlayerRole,
)
from matchday.services import membership_service, guest_service
from matchday.services.errors import (
    NotAuthorizedError,
    NotFoundError,
    DataValidationError,
    AlreadyMemberError,
    BannedError,
)
from matchday.utils.constants import (
    GROUP_PRIVACY_VALUES,
    DEFAULT_GROUP_PRIVACY,
    POSITIONS,
    MIN_RATING,
    MAX_RATING,
)
from matchday.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _validate_group_fields(name: Optional[str], privacy: Optional[str]):
    if name is not None:
        name = name.strip()
        if not name:
            raise DataValidationError("Group name cannot be empty")
        if len(name) > 100:
            raise DataValidationError("Group name must be 100 characters or fewer")
    if privacy is not None and privacy not in GROUP_PRIVACY_VALUES:
        raise DataValidationError("Privacy must be 'public' or 'private'")
    return name


def _group_to_dict(group: Group) -> Dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "privacy": group.privacy,
        "created_by": group.created_by,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


async def create_group(
    session: AsyncSession,
    user_id: int,
    name: str,
    description: Optional[str] = None,
    privacy: str = DEFAULT_GROUP_PRIVACY,
) -> Dict:
    """
    Create a group. The creator becomes its first admin (the owner), a
    member, and gets a profile with the admin role.
    """
    name = _validate_group_fields(name, privacy)

    group = Group(name=name, description=description, privacy=privacy, created_by=user_id)
    session.add(group)
    await session.flush()

    await membership_service.admit_member(
        session, group.id, user_id, role=PlayerRole.ADMIN.value
    )
    await session.commit()
    await session.refresh(group)

    logger.info("Created group %d '%s' owned by user %d", group.id, name, user_id)
    return {**_group_to_dict(group), "is_admin": True, "is_owner": True, "member_count": 1}


async def update_group(
    session: AsyncSession,
    group_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    privacy: Optional[str] = None,
) -> Dict:
    """Update group name, description or privacy (admin only)."""
    name = _validate_group_fields(name, privacy)
    group = await membership_service.get_group_or_404(session, group_id)

    if name is not None:
        group.name = name
    if description is not None:
        group.description = description
    if privacy is not None:
        group.privacy = privacy

    await session.commit()
    return _group_to_dict(group)


async def delete_group(session: AsyncSession, group_id: int) -> None:
    """
    Delete a group and everything it owns.

    Cascades to matches (teams, rosters, waiting lists), invites, bans,
    admin relations, profiles and memberships.
    """
    await membership_service.get_group_or_404(session, group_id)
    match_ids = select(Match.id).where(Match.group_id == group_id)

    await session.execute(delete(MatchWaitingList).where(MatchWaitingList.match_id.in_(match_ids)))
    await session.execute(delete(MatchPlayer).where(MatchPlayer.match_id.in_(match_ids)))
    await session.execute(delete(Team).where(Team.match_id.in_(match_ids)))
    await session.execute(delete(Match).where(Match.group_id == group_id))
    await session.execute(delete(GroupInvite).where(GroupInvite.group_id == group_id))
    await session.execute(delete(GroupBan).where(GroupBan.group_id == group_id))
    await session.execute(delete(GroupAdmin).where(GroupAdmin.group_id == group_id))
    await session.execute(delete(TeamPlayer).where(TeamPlayer.group_id == group_id))
    await session.execute(delete(GroupMember).where(GroupMember.group_id == group_id))
    await session.execute(delete(Group).where(Group.id == group_id))
    await session.commit()

    logger.info("Deleted group %d", group_id)


async def get_group(session: AsyncSession, group_id: int, viewer_id: int) -> Dict:
    """Get a group with the viewer's admin/owner flags."""
    group = await membership_service.get_group_or_404(session, group_id)
    member_count = await session.scalar(
        select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
    )
    owner_id = await membership_service.get_owner_id(session, group_id)
    return {
        **_group_to_dict(group),
        "is_admin": await membership_service.is_admin(session, group_id, viewer_id),
        "is_owner": owner_id == viewer_id,
        "member_count": member_count or 0,
    }


async def list_user_groups(session: AsyncSession, user_id: int) -> List[Dict]:
    """List groups the user belongs to, most recently joined first."""
    admin_group_ids = select(GroupAdmin.group_id).where(GroupAdmin.user_id == user_id)
    result = await session.execute(
        select(Group, GroupMember.joined_at, Group.id.in_(admin_group_ids))
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(GroupMember.joined_at.desc(), GroupMember.id.desc())
    )
    return [
        {
            **_group_to_dict(group),
            "joined_at": joined_at.isoformat() if joined_at else None,
            "is_admin": bool(admin),
        }
        for group, joined_at, admin in result.all()
    ]


async def list_public_groups(session: AsyncSession, user_id: int) -> List[Dict]:
    """List public groups the user has not joined yet."""
    joined = select(GroupMember.group_id).where(GroupMember.user_id == user_id)
    result = await session.execute(
        select(Group)
        .where(Group.privacy == GroupPrivacy.PUBLIC.value, Group.id.not_in(joined))
        .order_by(Group.created_at.desc(), Group.id.desc())
    )
    return [_group_to_dict(group) for group in result.scalars().all()]


async def get_group_stats(session: AsyncSession, group_id: int) -> Dict:
    """Total matches, total members, and matches scheduled after now."""
    await membership_service.get_group_or_404(session, group_id)
    total_matches = await session.scalar(
        select(func.count(Match.id)).where(Match.group_id == group_id)
    )
    total_members = await session.scalar(
        select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
    )
    upcoming_matches = await session.scalar(
        select(func.count(Match.id)).where(Match.group_id == group_id, Match.date_time > utcnow())
    )
    return {
        "total_matches": total_matches or 0,
        "total_members": total_members or 0,
        "upcoming_matches": upcoming_matches or 0,
    }


async def join_public_group(session: AsyncSession, group_id: int, user_id: int) -> Dict:
    """
    Join a public group without an invite.

    Raises:
        NotAuthorizedError: If the group is private
        BannedError: If the user is banned from the group
        AlreadyMemberError: If the user already belongs to the group
    """
    group = await membership_service.get_group_or_404(session, group_id)
    if group.privacy != GroupPrivacy.PUBLIC.value:
        raise NotAuthorizedError("This group is private. An invite code is required to join")
    if await membership_service.is_banned(session, group_id, user_id):
        raise BannedError("You have been banned from this group")
    if await membership_service.is_member(session, group_id, user_id):
        raise AlreadyMemberError("You are already a member of this group")

    try:
        profile = await membership_service.admit_member(session, group_id, user_id)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise AlreadyMemberError("You are already a member of this group")

    logger.info("User %d joined public group %d", user_id, group_id)
    return {"group_id": group.id, "group_name": group.name, "team_player_id": profile.id}


async def leave_group(session: AsyncSession, group_id: int, user_id: int) -> None:
    """
    Leave a group voluntarily.

    The player profile is kept as a leftover (reset on rejoin); waiting-list
    entries and rosters of matches without teams are vacated.
    """
    await membership_service.get_group_or_404(session, group_id)
    if not await membership_service.is_member(session, group_id, user_id):
        raise NotFoundError("You are not a member of this group")
    if await membership_service.get_owner_id(session, group_id) == user_id:
        raise NotAuthorizedError("The group owner cannot leave the group")

    await membership_service.drop_membership(session, group_id, user_id, keep_profile=True)
    await session.commit()
    logger.info("User %d left group %d", user_id, group_id)


async def list_members(session: AsyncSession, group_id: int) -> List[Dict]:
    """List members with roles, guest flag and profile fields."""
    await membership_service.get_group_or_404(session, group_id)
    admin_ids = await membership_service.get_admin_ids(session, group_id)
    owner_id = await membership_service.get_owner_id(session, group_id)

    result = await session.execute(
        select(GroupMember, User, TeamPlayer)
        .join(User, User.id == GroupMember.user_id)
        .outerjoin(
            TeamPlayer,
            and_(
                TeamPlayer.user_id == GroupMember.user_id,
                TeamPlayer.group_id == GroupMember.group_id,
            ),
        )
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )

    members = []
    for membership, user, profile in result.all():
        members.append(
            {
                "user_id": user.id,
                "name": user.name,
                "email": user.email,
                "is_guest": guest_service.is_guest_user(user),
                "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
                "is_admin": user.id in admin_ids,
                "is_owner": user.id == owner_id,
                "team_player_id": profile.id if profile else None,
                "rating": profile.rating if profile else None,
                "preferred_position": profile.preferred_position if profile else None,
                "is_key_player": profile.is_key_player if profile else None,
                "role": profile.role if profile else None,
            }
        )
    return members


async def _ensure_removable(session: AsyncSession, group_id: int, user_id: int, action: str):
    await membership_service.get_group_or_404(session, group_id)
    if not await membership_service.is_member(session, group_id, user_id):
        raise NotFoundError("User is not a member of this group")
    if await membership_service.get_owner_id(session, group_id) == user_id:
        raise NotAuthorizedError(f"The group owner cannot be {action}")


async def remove_member(session: AsyncSession, group_id: int, user_id: int) -> None:
    """Remove a member and all of their match entries and profile (admin only)."""
    await _ensure_removable(session, group_id, user_id, "removed")
    await membership_service.drop_membership(session, group_id, user_id, keep_profile=False)
    await session.commit()
    logger.info("Removed user %d from group %d", user_id, group_id)


async def ban_member(
    session: AsyncSession, group_id: int, user_id: int, banned_by: Optional[int] = None
) -> None:
    """Remove a member and block them from rejoining (admin only)."""
    await _ensure_removable(session, group_id, user_id, "banned")
    await membership_service.drop_membership(session, group_id, user_id, keep_profile=False)
    if not await membership_service.is_banned(session, group_id, user_id):
        session.add(GroupBan(group_id=group_id, user_id=user_id, banned_by=banned_by))
    await session.commit()
    logger.info("Banned user %d from group %d", user_id, group_id)


async def unban_member(session: AsyncSession, group_id: int, user_id: int) -> None:
    await membership_service.get_group_or_404(session, group_id)
    result = await session.execute(
        delete(GroupBan).where(GroupBan.group_id == group_id, GroupBan.user_id == user_id)
    )
    if result.rowcount == 0:
        raise NotFoundError("User is not banned from this group")
    await session.commit()
    logger.info("Unbanned user %d from group %d", user_id, group_id)


async def promote_member(session: AsyncSession, group_id: int, user_id: int) -> Dict:
    """
    Grant admin to a member and mirror the role on their profile.

    Promoting an existing admin is a no-op.
    """
    await membership_service.get_group_or_404(session, group_id)
    if not await membership_service.is_member(session, group_id, user_id):
        raise NotFoundError("User is not a member of this group")

    if not await membership_service.is_admin(session, group_id, user_id):
        session.add(GroupAdmin(group_id=group_id, user_id=user_id))
    profile = await membership_service.get_profile(session, group_id, user_id)
    if profile:
        profile.role = PlayerRole.ADMIN.value
    await session.commit()

    logger.info("Promoted user %d to admin in group %d", user_id, group_id)
    return {"user_id": user_id, "is_admin": True}


async def demote_member(session: AsyncSession, group_id: int, user_id: int) -> Dict:
    """Revoke admin from a member. The owner cannot be demoted."""
    await membership_service.get_group_or_404(session, group_id)
    if not await membership_service.is_admin(session, group_id, user_id):
        raise NotFoundError("User is not an admin of this group")
    if await membership_service.get_owner_id(session, group_id) == user_id:
        raise NotAuthorizedError("The group owner cannot be demoted")

    await session.execute(
        delete(GroupAdmin).where(GroupAdmin.group_id == group_id, GroupAdmin.user_id == user_id)
    )
    profile = await membership_service.get_profile(session, group_id, user_id)
    if profile:
        profile.role = PlayerRole.PLAYER.value
    await session.commit()

    logger.info("Demoted user %d in group %d", user_id, group_id)
    return {"user_id": user_id, "is_admin": False}


async def update_player_profile(
    session: AsyncSession,
    group_id: int,
    user_id: int,
    name: Optional[str] = None,
    rating: Optional[int] = None,
    preferred_position: Optional[str] = None,
    is_key_player: Optional[bool] = None,
) -> Dict:
    """Edit a member's rating, position, key-player flag, or display name."""
    if rating is not None and not MIN_RATING <= rating <= MAX_RATING:
        raise DataValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    if preferred_position is not None and preferred_position not in POSITIONS:
        raise DataValidationError(f"Position must be one of {', '.join(POSITIONS)}")

    await membership_service.get_group_or_404(session, group_id)
    profile = await membership_service.get_profile(session, group_id, user_id)
    if not profile or not await membership_service.is_member(session, group_id, user_id):
        raise NotFoundError("Player profile not found")

    user = await session.get(User, user_id)
    if name is not None:
        user.name = guest_service.validate_name(name)
    if rating is not None:
        profile.rating = rating
    if preferred_position is not None:
        profile.preferred_position = preferred_position
    if is_key_player is not None:
        profile.is_key_player = is_key_player
    await session.commit()

    return {
        "user_id": user_id,
        "team_player_id": profile.id,
        "name": user.name,
        "rating": profile.rating,
        "preferred_position": profile.preferred_position,
        "is_key_player": profile.is_key_player,
        "role": profile.role,
    }
