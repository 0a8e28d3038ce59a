"""add_candidate_unlocked_at

Revision ID: 9d4b2f61c7e8
Revises: 5c1e7a0d93b2
Create Date: 2026-10-19 10:41:03.552187

Records when a candidate was unlocked.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '9d4b2f61c7e8'
down_revision: Union[str, None] = '5c1e7a0d93b2'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def column_exists(table_name: str, column_name: str) -> bool:
    """Check if a column exists in the table."""
    inspector = inspect(op.get_bind())
    return column_name in [c['name'] for c in inspector.get_columns(table_name)]


def upgrade() -> None:
    if not column_exists('candidates', 'unlocked_at'):
        op.add_column('candidates', sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column('candidates', 'unlocked_at')
