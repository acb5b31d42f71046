"""
Tests for guest provisioning: placeholder emails, guest detection and
listing guest members of a group.
"""

import pytest
import pytest_asyncio

from matchday.database.models import User
from matchday.services import guest_service, group_service, membership_service
from matchday.services.errors import DataValidationError, NotFoundError


class TestGuestEmails:
    def test_make_guest_email_shape(self):
        email = guest_service.make_guest_email("  Jane   Doe ")
        assert email.startswith("jane.doe.guest-")
        assert email.endswith("@temp.local")

    def test_make_guest_email_is_unique(self):
        assert guest_service.make_guest_email("Sam") != guest_service.make_guest_email("Sam")

    def test_is_guest_email(self):
        assert guest_service.is_guest_email("sam.guest-123@TEMP.LOCAL")
        assert not guest_service.is_guest_email("sam@example.com")
        assert not guest_service.is_guest_email("")

    def test_is_guest_user_by_flag_or_domain(self):
        assert guest_service.is_guest_user(User(name="A", email="a@example.com", is_guest=True))
        assert guest_service.is_guest_user(User(name="B", email="b@temp.local", is_guest=False))
        assert not guest_service.is_guest_user(User(name="C", email="c@example.com", is_guest=False))


class TestValidateName:
    def test_strips(self):
        assert guest_service.validate_name("  Bob ") == "Bob"

    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 101])
    def test_rejects(self, name):
        with pytest.raises(DataValidationError):
            guest_service.validate_name(name)


@pytest_asyncio.fixture
async def group(db_session):
    owner = User(name="Owner", email="owner@example.com")
    db_session.add(owner)
    await db_session.flush()
    created = await group_service.create_group(db_session, owner.id, "Guest Night")
    return created


@pytest.mark.asyncio
async def test_add_guest_creates_member_with_default_profile(db_session, group):
    guest = await guest_service.add_guest(db_session, group["id"], "Cousin Vinny")

    assert guest["is_guest"] is True
    assert guest["email"].endswith("@temp.local")
    assert await membership_service.is_member(db_session, group["id"], guest["user_id"])
    profile = await membership_service.get_profile(db_session, group["id"], guest["user_id"])
    assert profile.id == guest["team_player_id"]
    assert profile.rating == 5

    members = await group_service.list_members(db_session, group["id"])
    flagged = {m["user_id"]: m["is_guest"] for m in members}
    assert flagged[guest["user_id"]] is True


@pytest.mark.asyncio
async def test_list_guests_only_returns_guests(db_session, group):
    first = await guest_service.add_guest(db_session, group["id"], "First Guest")
    second = await guest_service.add_guest(db_session, group["id"], "Second Guest")

    guests = await guest_service.list_guests(db_session, group["id"])
    assert [g["user_id"] for g in guests] == [first["user_id"], second["user_id"]]


@pytest.mark.asyncio
async def test_add_guest_to_missing_group(db_session):
    with pytest.raises(NotFoundError):
        await guest_service.add_guest(db_session, 999, "Nobody")
