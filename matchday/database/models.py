"""
SQLAlchemy ORM models for the match coordination system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from matchday.database.db import Base


class GroupPrivacy(str, enum.Enum):
    """Group visibility enum."""

    PUBLIC = "public"
    PRIVATE = "private"


class Position(str, enum.Enum):
    """Preferred playing position."""

    GK = "GK"
    DEF = "DEF"
    MID = "MID"
    FWD = "FWD"


class PlayerRole(str, enum.Enum):
    """Role mirrored on a player profile."""

    PLAYER = "player"
    ADMIN = "admin"


class User(Base):
    """Users provisioned from the identity provider, bulk import, or guest creation."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    auth_subject = Column(
        String, nullable=True, unique=True
    )  # Identity provider subject; NULL for guests and not-yet-claimed imports
    name = Column(String(100), nullable=False)
    email = Column(String, nullable=False, unique=True)  # Stored lowercase
    is_guest = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    memberships = relationship("GroupMember", back_populates="user")
    player_profiles = relationship("TeamPlayer", back_populates="user")


class Group(Base):
    """Groups own matches, memberships and invites."""

    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    privacy = Column(String(10), default=GroupPrivacy.PRIVATE.value, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    members = relationship("GroupMember", back_populates="group")
    admins = relationship("GroupAdmin", back_populates="group")
    matches = relationship("Match", back_populates="group")
    invites = relationship("GroupInvite", back_populates="group")

    __table_args__ = (
        CheckConstraint("privacy IN ('public', 'private')", name="ck_groups_privacy"),
        Index("idx_groups_privacy", "privacy"),
    )


class GroupMember(Base):
    """Join table (User ↔ Group)."""

    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    group = relationship("Group", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id"),
        Index("idx_group_members_group", "group_id"),
        Index("idx_group_members_user", "user_id"),
    )


class GroupAdmin(Base):
    """Admin relation. The earliest row per group is the owner."""

    __tablename__ = "group_admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    group = relationship("Group", back_populates="admins")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id"),
        Index("idx_group_admins_group_created", "group_id", "created_at"),
    )


class GroupBan(Base):
    """Users barred from redeeming invites or joining a group."""

    __tablename__ = "group_bans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    banned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("group_id", "user_id"),)


class TeamPlayer(Base):
    """Per-group player profile (one per user and group)."""

    __tablename__ = "team_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    rating = Column(Integer, default=5, nullable=False)
    preferred_position = Column(String(3), default=Position.MID.value, nullable=False)
    is_key_player = Column(Boolean, default=False, nullable=False)
    role = Column(String(10), default=PlayerRole.PLAYER.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="player_profiles")

    __table_args__ = (
        UniqueConstraint("user_id", "group_id"),
        CheckConstraint("rating >= 1 AND rating <= 10", name="ck_team_players_rating"),
        CheckConstraint(
            "preferred_position IN ('GK', 'DEF', 'MID', 'FWD')",
            name="ck_team_players_position",
        ),
        CheckConstraint("role IN ('player', 'admin')", name="ck_team_players_role"),
        Index("idx_team_players_group", "group_id"),
    )


class Match(Base):
    """Scheduled match. Lifecycle: open -> teams created -> finalized."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    date_time = Column(DateTime(timezone=True), nullable=False)
    location = Column(String, nullable=True)
    max_players_per_team = Column(Integer, nullable=False)
    planned_teams = Column(Integer, nullable=False)
    teams_created = Column(Boolean, default=False, nullable=False)
    teams_finalized = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    group = relationship("Group", back_populates="matches")
    teams = relationship("Team", back_populates="match", order_by="Team.id")

    __table_args__ = (
        CheckConstraint("max_players_per_team >= 1", name="ck_matches_max_players"),
        CheckConstraint("planned_teams >= 1", name="ck_matches_planned_teams"),
        Index("idx_matches_group_date", "group_id", "date_time"),
    )


class Team(Base):
    """Team produced by team formation."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    name = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    match = relationship("Match", back_populates="teams")

    __table_args__ = (Index("idx_teams_match", "match_id"),)


class MatchPlayer(Base):
    """Roster entry: a player profile or an ad-hoc guest name."""

    __tablename__ = "match_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    team_player_id = Column(Integer, ForeignKey("team_players.id"), nullable=True)
    guest_name = Column(String(100), nullable=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True)  # NULL until teams are formed
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    team_player = relationship("TeamPlayer")

    __table_args__ = (
        UniqueConstraint("match_id", "team_player_id"),
        CheckConstraint(
            "(team_player_id IS NULL) <> (guest_name IS NULL)",
            name="ck_match_players_player_or_guest",
        ),
        Index("idx_match_players_match", "match_id"),
        Index("idx_match_players_team", "team_id"),
    )


class MatchWaitingList(Base):
    """FIFO queue of profiles waiting for a roster spot."""

    __tablename__ = "match_waiting_list"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    team_player_id = Column(Integer, ForeignKey("team_players.id"), nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    team_player = relationship("TeamPlayer")

    __table_args__ = (
        UniqueConstraint("match_id", "team_player_id"),
        Index("idx_match_waiting_list_match_joined", "match_id", "joined_at"),
    )


class GroupInvite(Base):
    """Invite code granting membership on redemption."""

    __tablename__ = "group_invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    code = Column(String(8), nullable=False, unique=True)
    max_uses = Column(Integer, default=-1, nullable=False)  # -1 = unlimited
    used_count = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    group = relationship("Group", back_populates="invites")

    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_group_invites_used_count"),
        CheckConstraint("max_uses = -1 OR max_uses >= 1", name="ck_group_invites_max_uses"),
        Index("idx_group_invites_group", "group_id"),
    )
