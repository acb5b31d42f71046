"""
User service layer for user lookups and identity provisioning.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from matchday.database.models import User
from matchday.services.errors import NotAuthenticatedError
import logging

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim an email address; empty input becomes None."""
    email = email.strip().lower() if email else None
    return email or None


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """
    Get user by email address.

    Args:
        session: Database session
        email: Email address (will be normalized to lowercase)

    Returns:
        User dictionary or None if not found
    """
    email = normalize_email(email)
    if not email:
        return None

    result = await session.execute(select(User).where(func.lower(User.email) == email))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_or_create_user_from_identity(
    session: AsyncSession, subject: str, name: Optional[str], email: Optional[str]
) -> Dict:
    """
    Resolve the local user for an authenticated identity.

    Matches on the provider subject first. Failing that, an existing row
    with the same email (created by bulk import) is claimed by attaching
    the subject to it. Otherwise a new user is created.

    Raises:
        NotAuthenticatedError: If the identity carries no subject or email
    """
    if not subject:
        raise NotAuthenticatedError("Identity is missing a subject")

    result = await session.execute(select(User).where(User.auth_subject == subject))
    user = result.scalar_one_or_none()
    if user:
        return _user_to_dict(user)

    email = normalize_email(email)
    if not email:
        raise NotAuthenticatedError("Identity is missing an email address")

    result = await session.execute(select(User).where(func.lower(User.email) == email))
    user = result.scalar_one_or_none()
    if user and user.auth_subject is None and not user.is_guest:
        user.auth_subject = subject
        if name:
            user.name = name.strip()
        await session.commit()
        logger.info("Linked identity to imported user %d", user.id)
        return _user_to_dict(user)
    if user:
        raise NotAuthenticatedError("Email is already linked to another account")

    user = User(
        auth_subject=subject,
        name=(name or email.split("@")[0]).strip(),
        email=email,
        is_guest=False,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("Provisioned user %d from identity provider", user.id)
    return _user_to_dict(user)


def _user_to_dict(user: User) -> Dict:
    """Convert a User ORM instance to a dictionary."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "is_guest": user.is_guest,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }
