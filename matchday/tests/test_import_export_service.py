"""
Tests for player export and bulk import.
"""

import csv
import io
import json

import pytest
import pytest_asyncio
from sqlalchemy import select

from matchday.database.models import User
from matchday.services import (
    import_export_service,
    group_service,
    guest_service,
    membership_service,
)
from matchday.services.import_export_service import ImportPlayerRecord, CSV_HEADERS
from matchday.services.errors import DataValidationError


class TestImportPlayerRecord:
    def test_defaults(self):
        record = ImportPlayerRecord.model_validate({"name": "Ann", "email": "ANN@Example.com "})
        assert record.email == "ann@example.com"
        assert (record.rating, record.preferred_position, record.is_key_player, record.role) == (
            5, "MID", False, "player"
        )

    @pytest.mark.parametrize(
        "raw, expected",
        [("7", 7), (0, 5), ("abc", 5), (None, 5), (15, 10), (-3, 1), ("8.0", 8)],
    )
    def test_rating_is_coerced_and_clamped(self, raw, expected):
        record = ImportPlayerRecord.model_validate({"name": "A", "email": "a@x.com", "rating": raw})
        assert record.rating == expected

    def test_unknown_position_and_role_fall_back(self):
        record = ImportPlayerRecord.model_validate(
            {"name": "A", "email": "a@x.com", "preferred_position": "striker", "role": "captain"}
        )
        assert record.preferred_position == "MID"
        assert record.role == "player"

    def test_key_player_accepts_yes(self):
        record = ImportPlayerRecord.model_validate(
            {"name": "A", "email": "a@x.com", "is_key_player": "Yes", "preferred_position": "gk"}
        )
        assert record.is_key_player is True
        assert record.preferred_position == "GK"

    @pytest.mark.parametrize(
        "raw", [{"email": "a@x.com"}, {"name": "A"}, {"name": "A", "email": "not-an-email"}]
    )
    def test_missing_or_invalid_required_fields(self, raw):
        with pytest.raises(ValueError):
            ImportPlayerRecord.model_validate(raw)


class TestPayloadParsing:
    def test_json_array_and_object(self):
        rows = [{"name": "A", "email": "a@x.com"}]
        assert import_export_service.parse_json_payload(json.dumps(rows)) == rows
        assert import_export_service.parse_json_payload(json.dumps({"players": rows})) == rows

    def test_invalid_json(self):
        with pytest.raises(DataValidationError):
            import_export_service.parse_json_payload("{not json")
        with pytest.raises(DataValidationError):
            import_export_service.parse_json_payload('{"people": []}')

    def test_csv_with_aliases(self):
        content = "Name,Email,Rating,Position,Key Player\nAnn,ann@x.com,8,DEF,yes\n\n"
        records = import_export_service.parse_csv_payload(content)
        assert records == [
            {
                "name": "Ann",
                "email": "ann@x.com",
                "rating": "8",
                "preferred_position": "DEF",
                "is_key_player": "yes",
            }
        ]

    def test_csv_requires_name_and_email(self):
        with pytest.raises(DataValidationError):
            import_export_service.parse_csv_payload("name,rating\nAnn,5\n")
        with pytest.raises(DataValidationError):
            import_export_service.parse_csv_payload("   ")

    def test_unknown_format(self):
        with pytest.raises(DataValidationError):
            import_export_service.parse_import_payload("", "xml")


@pytest_asyncio.fixture
async def group(db_session):
    owner = User(name="Owner", email="owner@example.com")
    db_session.add(owner)
    await db_session.flush()
    created = await group_service.create_group(db_session, owner.id, "Import FC")
    return {"id": created["id"], "owner_id": owner.id}


@pytest.mark.asyncio
async def test_export_lists_members_and_guests(db_session, group):
    await guest_service.add_guest(db_session, group["id"], "Guest Player")

    exported = await import_export_service.export_group_players(db_session, group["id"])
    assert exported["group"]["name"] == "Import FC"
    types = {p["name"]: p["player_type"] for p in exported["players"]}
    assert types == {"Owner": "Member", "Guest Player": "Guest"}

    text = import_export_service.players_to_csv(exported["players"])
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == CSV_HEADERS
    assert len(rows) == 3
    assert rows[1][6] in ("Yes", "No")


@pytest.mark.asyncio
async def test_import_creates_users_members_and_profiles(db_session, group):
    records = [
        {"name": "Ann", "email": "ann@example.com", "rating": 8, "preferred_position": "DEF"},
        {"name": "Ben", "email": "ben@example.com", "role": "admin", "is_key_player": True},
    ]
    summary = await import_export_service.import_players(
        db_session, group["id"], records, pause_seconds=0
    )
    assert summary["success_count"] == 2
    assert summary["error_count"] == 0
    assert summary["message"] == "2 added successfully, 0 errors"

    ann = await db_session.scalar(select(User).where(User.email == "ann@example.com"))
    ben = await db_session.scalar(select(User).where(User.email == "ben@example.com"))
    ann_profile = await membership_service.get_profile(db_session, group["id"], ann.id)
    assert (ann_profile.rating, ann_profile.preferred_position) == (8, "DEF")
    assert await membership_service.is_member(db_session, group["id"], ann.id)
    assert await membership_service.is_admin(db_session, group["id"], ben.id)


@pytest.mark.asyncio
async def test_import_reports_row_errors_without_aborting(db_session, group):
    records = [
        {"name": "Ann", "email": "ann@example.com"},
        {"name": "", "email": "nobody@example.com"},
        {"name": "Bad Mail", "email": "bad-mail"},
        {"name": "Cat", "email": "cat@example.com"},
    ]
    summary = await import_export_service.import_players(
        db_session, group["id"], records, batch_size=2, pause_seconds=0
    )
    assert summary["total"] == 4
    assert summary["success_count"] == 2
    assert summary["error_count"] == 2
    assert summary["errors"][0].startswith("Row 2")
    assert summary["message"].startswith("2 added successfully, 2 errors: ")


@pytest.mark.asyncio
async def test_import_updates_existing_profile(db_session, group):
    await import_export_service.import_players(
        db_session, group["id"], [{"name": "Ann", "email": "ann@example.com"}], pause_seconds=0
    )
    await import_export_service.import_players(
        db_session,
        group["id"],
        [{"name": "Ann", "email": "ANN@example.com", "rating": 9}],
        pause_seconds=0,
    )

    members = await group_service.list_members(db_session, group["id"])
    anns = [m for m in members if m["email"] == "ann@example.com"]
    assert len(anns) == 1
    assert anns[0]["rating"] == 9


@pytest.mark.asyncio
async def test_import_keeps_owner_admin(db_session, group):
    summary = await import_export_service.import_players(
        db_session,
        group["id"],
        [{"name": "Owner", "email": "owner@example.com", "role": "player"}],
        pause_seconds=0,
    )
    assert summary["success_count"] == 1
    assert await membership_service.is_admin(db_session, group["id"], group["owner_id"])


@pytest.mark.asyncio
async def test_import_skips_banned_users(db_session, group):
    await import_export_service.import_players(
        db_session, group["id"], [{"name": "Ann", "email": "ann@example.com"}], pause_seconds=0
    )
    ann = await db_session.scalar(select(User).where(User.email == "ann@example.com"))
    await group_service.ban_member(db_session, group["id"], ann.id)

    summary = await import_export_service.import_players(
        db_session, group["id"], [{"name": "Ann", "email": "ann@example.com"}], pause_seconds=0
    )
    assert summary["error_count"] == 1
    assert "banned" in summary["errors"][0]
