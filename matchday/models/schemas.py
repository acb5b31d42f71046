"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class GroupCreate(BaseModel):
    """Group creation payload."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    privacy: Literal["public", "private"] = "private"


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    privacy: Optional[Literal["public", "private"]] = None


class GroupResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    privacy: str
    created_by: Optional[int] = None
    created_at: Optional[str] = None
    is_admin: Optional[bool] = None
    is_owner: Optional[bool] = None
    member_count: Optional[int] = None
    joined_at: Optional[str] = None


class GroupStatsResponse(BaseModel):
    total_matches: int
    total_members: int
    upcoming_matches: int


class MemberResponse(BaseModel):
    """Group member with roles and profile fields."""

    user_id: int
    name: str
    email: str
    is_guest: bool
    joined_at: Optional[str] = None
    is_admin: bool
    is_owner: bool
    team_player_id: Optional[int] = None
    rating: Optional[int] = None
    preferred_position: Optional[str] = None
    is_key_player: Optional[bool] = None
    role: Optional[str] = None


class PlayerProfileUpdate(BaseModel):
    """Admin edit of a member's profile. Only provided fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    rating: Optional[int] = Field(None, ge=1, le=10)
    preferred_position: Optional[Literal["GK", "DEF", "MID", "FWD"]] = None
    is_key_player: Optional[bool] = None

    @model_validator(mode="after")
    def validate_not_empty(self):
        if all(
            v is None
            for v in (self.name, self.rating, self.preferred_position, self.is_key_player)
        ):
            raise ValueError("At least one field must be provided")
        return self


# ---------------------------------------------------------------------------
# Invites and guests
# ---------------------------------------------------------------------------


class InviteCreate(BaseModel):
    max_uses: int = Field(-1, description="-1 for unlimited")
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_max_uses(self):
        if self.max_uses != -1 and self.max_uses < 1:
            raise ValueError("max_uses must be -1 (unlimited) or at least 1")
        return self


class InviteResponse(BaseModel):
    id: int
    group_id: int
    code: str
    max_uses: int
    used_count: int
    expires_at: Optional[str] = None
    is_active: bool
    created_by: Optional[int] = None
    created_at: Optional[str] = None


class InviteRedeemRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)


class JoinGroupResponse(BaseModel):
    group_id: int
    group_name: str
    team_player_id: int


class GuestCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class GuestResponse(BaseModel):
    user_id: int
    team_player_id: Optional[int] = None
    name: str
    email: str
    joined_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Matches, roster and teams
# ---------------------------------------------------------------------------


class MatchCreate(BaseModel):
    """Match scheduling payload."""

    date_time: datetime
    location: Optional[str] = None
    max_players_per_team: int = Field(..., ge=1)
    planned_teams: int = Field(2, ge=2)


class MatchSummaryResponse(BaseModel):
    id: int
    group_id: int
    created_by: Optional[int] = None
    date_time: Optional[str] = None
    location: Optional[str] = None
    max_players_per_team: int
    planned_teams: int
    teams_created: bool
    teams_finalized: bool
    capacity: int
    player_count: int
    waiting_count: int
    team_count: int = 0


class AddPlayerRequest(BaseModel):
    team_player_id: int


class AddGuestNameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class MoveFromWaitingListRequest(BaseModel):
    team_id: Optional[int] = None


class RosterActionResponse(BaseModel):
    """Result of an admission: on the roster or on the waiting list."""

    match_id: int
    status: Literal["registered", "waiting"]
    team_player_id: Optional[int] = None
    match_player_id: Optional[int] = None
    waiting_list_id: Optional[int] = None
    position: Optional[int] = None
    guest_name: Optional[str] = None
    team_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


class ImportRequest(BaseModel):
    format: Literal["json", "csv"] = "json"
    content: str = Field(..., min_length=1)


class ImportSummaryResponse(BaseModel):
    total: int
    success_count: int
    error_count: int
    errors: List[str]
    message: str
