"""
Authentication and group-role dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from matchday.services import auth_service, user_service, membership_service
from matchday.services.errors import NotAuthenticatedError
from matchday.database.db import get_db_session
from matchday.database.models import Group, Match

security = HTTPBearer(auto_error=False)


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from the identity token.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        User dictionary (id, name, email, is_guest)

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Verify token
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await user_service.get_or_create_user_from_identity(
            session,
            subject=payload.get("sub"),
            name=payload.get("name"),
            email=payload.get("email"),
        )
    except NotAuthenticatedError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user


async def _has_group_role(
    session: AsyncSession, user_id: int, group_id: int, required_role: Optional[str]
) -> bool:
    """
    Check a user's role within a group.
    required_role: 'owner', 'admin', or None for any membership.
    """
    if required_role == "owner":
        return await membership_service.get_owner_id(session, group_id) == user_id
    if required_role == "admin":
        return await membership_service.is_admin(session, group_id, user_id)
    return await membership_service.is_member(session, group_id, user_id)


async def _group_exists(session: AsyncSession, group_id: int) -> None:
    result = await session.execute(select(Group.id).where(Group.id == group_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")


async def _group_id_for_match(session: AsyncSession, match_id: int) -> int:
    result = await session.execute(select(Match.group_id).where(Match.id == match_id))
    group_id = result.scalar_one_or_none()
    if group_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Match not found")
    return group_id


_ROLE_DETAILS = {
    None: "Group membership required",
    "admin": "Group admin access required",
    "owner": "Only the group owner can do this",
}


def _make_group_dep(required_role: Optional[str]):
    async def _dep(
        group_id: int,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        await _group_exists(session, group_id)
        if not await _has_group_role(
            session, user_id=user["id"], group_id=group_id, required_role=required_role
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail=_ROLE_DETAILS[required_role]
            )
        return user

    return _dep


def make_require_group_member():
    return _make_group_dep(None)


def make_require_group_admin():
    return _make_group_dep("admin")


def make_require_group_owner():
    return _make_group_dep("owner")


def _make_match_dep(required_role: Optional[str]):
    """Resolve the group from match_id, then check the role."""

    async def _dep(
        match_id: int,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        group_id = await _group_id_for_match(session, match_id)
        if not await _has_group_role(
            session, user_id=user["id"], group_id=group_id, required_role=required_role
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail=_ROLE_DETAILS[required_role]
            )
        return user

    return _dep


def make_require_match_member():
    return _make_match_dep(None)


def make_require_match_admin():
    return _make_match_dep("admin")
