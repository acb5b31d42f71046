"""001_initial_schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 10:00:00.000000

Initial schema for group match coordination.

Creates all tables based on current models:
- Identity and membership: users, groups, group_members, group_admins, group_bans
- Profiles: team_players
- Matches: matches, teams, match_players, match_waiting_list
- Invites: group_invites
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    # Import models to register them with Base.metadata
    from matchday.database.db import Base
    from matchday.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from matchday.database.db import Base
    from matchday.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
