"""add_progression_states

Revision ID: 001_progression
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_progression'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'progression_states',
        sa.Column('user_id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('streak_current', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('streak_longest', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('counters', sa.JSON(), nullable=False),
        sa.Column('badges', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('xp >= 0', name='ck_progression_xp_non_negative'),
        sa.CheckConstraint('level >= 1', name='ck_progression_level_positive'),
        sa.CheckConstraint('streak_current <= streak_longest', name='ck_progression_streak_bounded'),
    )


def downgrade() -> None:
    op.drop_table('progression_states')
