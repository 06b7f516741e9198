"""Create membership activity log table

Revision ID: 2026_10_19_0002
Revises: 2026_10_19_0001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0002'
down_revision: Union[str, None] = '2026_10_19_0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'contest_activity',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('external_user_id', sa.BigInteger(), nullable=False),
        sa.Column('community_id', sa.BigInteger(), nullable=False),
        sa.Column(
            'action',
            sa.Enum('JOIN_REQUEST', 'APPROVED', 'REJECTED', 'JOINED', 'LEFT', name='activityaction'),
            nullable=False,
        ),
        sa.Column('first_name', sa.String(255), nullable=False),
        sa.Column('username', sa.String(64), nullable=True),
        sa.Column('referral_code', sa.String(64), nullable=True),
        sa.Column('details', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_contest_activity_external_user_id', 'contest_activity', ['external_user_id'])
    op.create_index('ix_contest_activity_community_id', 'contest_activity', ['community_id'])
    op.create_index('ix_contest_activity_action', 'contest_activity', ['action'])
    op.create_index('ix_contest_activity_created_at', 'contest_activity', ['created_at'])


def downgrade() -> None:
    op.drop_table('contest_activity')
    sa.Enum(name='activityaction').drop(op.get_bind(), checkfirst=True)
