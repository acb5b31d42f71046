"""
Group player export and bulk import.

Export produces a JSON document or a CSV sheet of a group's players.
Import accepts the same shapes back, validates each record on its own,
and reports per-record failures in a summary instead of aborting.
"""

import io
import csv
import json
import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError, field_validator
from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.database.models import User, GroupMember, GroupAdmin, TeamPlayer, PlayerRole
from matchday.services import membership_service, guest_service
from matchday.services.errors import DataValidationError
from matchday.utils.constants import (
    POSITIONS,
    DEFAULT_POSITION,
    PLAYER_ROLES,
    DEFAULT_ROLE,
    DEFAULT_RATING,
    MIN_RATING,
    MAX_RATING,
    MAX_NAME_LENGTH,
    IMPORT_BATCH_SIZE,
    IMPORT_BATCH_PAUSE_SECONDS,
    IMPORT_ERROR_PREVIEW_COUNT,
)
from matchday.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Name", "Email", "Player Type", "Joined Date", "Rating", "Position", "Key Player", "Role"]

_TRUTHY = {"yes", "true", "1", "y"}


class ImportPlayerRecord(BaseModel):
    """One player row from an import file. Only name and email are required."""

    name: str
    email: str
    rating: int = DEFAULT_RATING
    preferred_position: str = DEFAULT_POSITION
    is_key_player: bool = False
    role: str = DEFAULT_ROLE

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        v = str(v).strip() if v is not None else ""
        if not v:
            raise ValueError("name is required")
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"name must be {MAX_NAME_LENGTH} characters or fewer")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, v):
        v = str(v).strip().lower() if v is not None else ""
        if not v:
            raise ValueError("email is required")
        if "@" not in v:
            raise ValueError(f"invalid email '{v}'")
        return v

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, v):
        try:
            rating = int(float(v))
        except (TypeError, ValueError):
            return DEFAULT_RATING
        if rating == 0:
            return DEFAULT_RATING
        return min(MAX_RATING, max(MIN_RATING, rating))

    @field_validator("preferred_position", mode="before")
    @classmethod
    def _position(cls, v):
        v = str(v).strip().upper() if v is not None else ""
        return v if v in POSITIONS else DEFAULT_POSITION

    @field_validator("is_key_player", mode="before")
    @classmethod
    def _key_player(cls, v):
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in _TRUTHY if v is not None else False

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, v):
        v = str(v).strip().lower() if v is not None else ""
        return v if v in PLAYER_ROLES else DEFAULT_ROLE


# --- Export ---


async def export_group_players(session: AsyncSession, group_id: int) -> Dict:
    """
    Export a group's players as a JSON-ready document.

    Returns:
        {"group": {name, id, exported_at}, "players": [...]}
    """
    group = await membership_service.get_group_or_404(session, group_id)
    result = await session.execute(
        select(User, GroupMember.joined_at, TeamPlayer)
        .join(GroupMember, GroupMember.user_id == User.id)
        .outerjoin(
            TeamPlayer,
            and_(TeamPlayer.user_id == User.id, TeamPlayer.group_id == GroupMember.group_id),
        )
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )

    players = []
    for user, joined_at, profile in result.all():
        players.append(
            {
                "name": user.name,
                "email": user.email,
                "player_type": "Guest" if guest_service.is_guest_user(user) else "Member",
                "joined_at": joined_at.date().isoformat() if joined_at else None,
                "rating": profile.rating if profile else DEFAULT_RATING,
                "preferred_position": profile.preferred_position if profile else DEFAULT_POSITION,
                "is_key_player": profile.is_key_player if profile else False,
                "role": profile.role if profile else DEFAULT_ROLE,
            }
        )

    logger.info("Exported %d players from group %d", len(players), group_id)
    return {
        "group": {"name": group.name, "id": group.id, "exported_at": utcnow().isoformat()},
        "players": players,
    }


def players_to_csv(players: List[Dict]) -> str:
    """Render exported players as CSV text with a header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADERS)
    for p in players:
        writer.writerow(
            [
                p["name"],
                p["email"],
                p["player_type"],
                p["joined_at"] or "",
                p["rating"],
                p["preferred_position"],
                "Yes" if p["is_key_player"] else "No",
                p["role"],
            ]
        )
    return buffer.getvalue()


# --- Import parsing ---


def parse_json_payload(content: str) -> List[Dict[str, Any]]:
    """Accept a JSON array of records or an object with a ``players`` array."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise DataValidationError(f"Invalid JSON: {e.msg}")

    if isinstance(data, dict):
        data = data.get("players")
    if not isinstance(data, list):
        raise DataValidationError("JSON must be an array of players or an object with a 'players' array")
    return [row if isinstance(row, dict) else {} for row in data]


def parse_csv_payload(content: str) -> List[Dict[str, Any]]:
    """
    Parse CSV with a header row. ``name`` and ``email`` columns are required;
    ``rating``, ``position``/``preferred_position``, ``key_player``/``is_key_player``
    and ``role`` are optional. Headers are case-insensitive.
    """
    reader = csv.reader(io.StringIO(content.strip()))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        raise DataValidationError("CSV file is empty")

    headers = [h.strip().lower().replace(" ", "_") for h in rows[0]]
    if "name" not in headers or "email" not in headers:
        raise DataValidationError("CSV must have 'name' and 'email' columns")

    aliases = {
        "position": "preferred_position",
        "key_player": "is_key_player",
    }
    records = []
    for row in rows[1:]:
        record = {}
        for header, value in zip(headers, row):
            key = aliases.get(header, header)
            if value.strip() != "":
                record[key] = value.strip()
        records.append(record)
    return records


def parse_import_payload(content: str, fmt: str) -> List[Dict[str, Any]]:
    if fmt == "json":
        return parse_json_payload(content)
    if fmt == "csv":
        return parse_csv_payload(content)
    raise DataValidationError("Format must be 'json' or 'csv'")


# --- Import ---


async def _sync_admin_role(session: AsyncSession, group_id: int, user_id: int, profile: TeamPlayer):
    """Keep the admin relation in line with the profile role (owner stays admin)."""
    admin = await membership_service.is_admin(session, group_id, user_id)
    if profile.role == PlayerRole.ADMIN.value and not admin:
        session.add(GroupAdmin(group_id=group_id, user_id=user_id))
    elif profile.role != PlayerRole.ADMIN.value and admin:
        if await membership_service.get_owner_id(session, group_id) == user_id:
            profile.role = PlayerRole.ADMIN.value
        else:
            admin_row = await session.scalar(
                select(GroupAdmin).where(GroupAdmin.group_id == group_id, GroupAdmin.user_id == user_id)
            )
            await session.delete(admin_row)


async def import_player(session: AsyncSession, group_id: int, record: ImportPlayerRecord) -> None:
    """
    Upsert one imported player: user by email, membership, and profile.

    Commits on success; the caller handles rollback on failure.
    """
    result = await session.execute(select(User).where(func.lower(User.email) == record.email))
    user = result.scalar_one_or_none()
    if not user:
        user = User(
            name=record.name,
            email=record.email,
            is_guest=guest_service.is_guest_email(record.email),
        )
        session.add(user)
        await session.flush()

    if await membership_service.is_banned(session, group_id, user.id):
        raise DataValidationError(f"{record.email} is banned from this group")

    if not await membership_service.is_member(session, group_id, user.id):
        session.add(GroupMember(group_id=group_id, user_id=user.id))

    profile = await membership_service.get_profile(session, group_id, user.id)
    if not profile:
        profile = TeamPlayer(user_id=user.id, group_id=group_id)
        session.add(profile)
    profile.rating = record.rating
    profile.preferred_position = record.preferred_position
    profile.is_key_player = record.is_key_player
    profile.role = record.role
    await session.flush()

    await _sync_admin_role(session, group_id, user.id, profile)
    await session.commit()


def _describe_validation_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg'].removeprefix('Value error, ')}"
        for err in e.errors()
    )


async def import_players(
    session: AsyncSession,
    group_id: int,
    records: List[Dict[str, Any]],
    batch_size: Optional[int] = None,
    pause_seconds: Optional[float] = None,
) -> Dict:
    """
    Import player records into a group.

    Records are handled in batches with a short pause between batches to
    spread load on the database. Each record succeeds or fails on its own.

    Returns:
        Summary dict with total, success_count, error_count, errors and message
    """
    await membership_service.get_group_or_404(session, group_id)
    batch_size = batch_size or IMPORT_BATCH_SIZE
    pause_seconds = IMPORT_BATCH_PAUSE_SECONDS if pause_seconds is None else pause_seconds

    success_count = 0
    errors: List[str] = []

    for start in range(0, len(records), batch_size):
        if start:
            await asyncio.sleep(pause_seconds)
        for offset, raw in enumerate(records[start:start + batch_size]):
            row_number = start + offset + 1
            label = raw.get("email") or raw.get("name") or f"row {row_number}"
            try:
                record = ImportPlayerRecord.model_validate(raw)
            except ValidationError as e:
                errors.append(f"Row {row_number} ({label}): {_describe_validation_error(e)}")
                continue

            try:
                await import_player(session, group_id, record)
                success_count += 1
            except DataValidationError as e:
                await session.rollback()
                errors.append(f"Row {row_number} ({label}): {e}")
            except Exception as e:
                await session.rollback()
                logger.warning("Import of %s into group %d failed: %s", record.email, group_id, e)
                errors.append(f"Row {row_number} ({label}): could not be saved")

    message = f"{success_count} added successfully, {len(errors)} errors"
    if errors:
        message += ": " + "; ".join(errors[:IMPORT_ERROR_PREVIEW_COUNT])
    logger.info("Imported into group %d: %s", group_id, message)

    return {
        "total": len(records),
        "success_count": success_count,
        "error_count": len(errors),
        "errors": errors,
        "message": message,
    }
