"""create_saved_search_tables

Revision ID: 5c1e7a2f9b3d
Revises:
Create Date: 2025-11-30 10:12:08.412905

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e7a2f9b3d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'saved_searches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('query', sa.Text, nullable=False),
        sa.Column('query_state', sa.JSON, nullable=True),
        sa.Column('search_type', sa.String(20), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_table(
        'saved_search_schedules',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'saved_search_id',
            sa.String(36),
            sa.ForeignKey('saved_searches.id'),
            nullable=False,
            index=True,
        ),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean, nullable=False, index=True),
        sa.Column('last_run_at', sa.DateTime, nullable=True),
        sa.Column('next_run_at', sa.DateTime, nullable=True, index=True),
        sa.Column('repeat_on', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_table(
        'saved_search_results',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('query', sa.Text, nullable=False),
        sa.Column('response', sa.Text, nullable=False),
        sa.Column('citations', sa.JSON, nullable=False),
        sa.Column('query_state', sa.JSON, nullable=True),
        sa.Column('search_type', sa.String(20), nullable=False),
        sa.Column('repeat_on', sa.JSON, nullable=True),
        sa.Column('has_changed', sa.Boolean, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, index=True),
    )
    op.create_table(
        'weekly_assistants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('week_start', sa.String(10), nullable=False, index=True, unique=True),
        sa.Column('assistant_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('weekly_assistants')
    op.drop_table('saved_search_results')
    op.drop_table('saved_search_schedules')
    op.drop_table('saved_searches')
