"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2025-11-17 17:15:00.000000

Complete schema for fresh deployments:
- profiles
- teams, team_members, team_invitations, team_join_requests
- walk_completions, phase_unlocks, trail_completions, book_completions,
  magnolias_hikes_completions
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
    from trailteams.database.db import Base
    from trailteams.database import models  # noqa: F401

    # Partial unique indexes on pending requests come from the model definitions
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from trailteams.database.db import Base
    from trailteams.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
