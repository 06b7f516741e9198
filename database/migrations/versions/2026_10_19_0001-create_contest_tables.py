"""Create contest participant and referral tables

Revision ID: 2026_10_19_0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'contest_participants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('external_user_id', sa.BigInteger(), nullable=False),
        sa.Column('community_id', sa.BigInteger(), nullable=False),
        sa.Column('username', sa.String(64), nullable=True),
        sa.Column('first_name', sa.String(255), nullable=False),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('referral_code', sa.String(64), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('task_completed', sa.Boolean(), nullable=False),
        sa.Column('referred_by', sa.Integer(), sa.ForeignKey('contest_participants.id'), nullable=True),
        sa.Column('referral_count', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('first_referral_point_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('external_user_id', 'community_id', name='uq_participant_member'),
    )
    op.create_index('ix_contest_participants_external_user_id', 'contest_participants', ['external_user_id'])
    op.create_index('ix_contest_participants_community_id', 'contest_participants', ['community_id'])
    op.create_index('ix_contest_participants_referral_code', 'contest_participants', ['referral_code'], unique=True)
    op.create_index('ix_contest_participants_is_active', 'contest_participants', ['is_active'])

    op.create_table(
        'contest_referrals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('referrer_id', sa.Integer(), sa.ForeignKey('contest_participants.id'), nullable=False),
        sa.Column('referred_id', sa.Integer(), sa.ForeignKey('contest_participants.id'), nullable=False),
        sa.Column('community_id', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'LEFT', name='referralstatus'), nullable=False),
        sa.Column('points_awarded', sa.Integer(), nullable=False),
        sa.Column('left_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_contest_referrals_referrer_id', 'contest_referrals', ['referrer_id'])
    op.create_index('ix_contest_referrals_referred_id', 'contest_referrals', ['referred_id'], unique=True)
    op.create_index('ix_contest_referrals_community_id', 'contest_referrals', ['community_id'])
    op.create_index('ix_contest_referrals_status', 'contest_referrals', ['status'])


def downgrade() -> None:
    op.drop_table('contest_referrals')
    op.drop_table('contest_participants')
    sa.Enum(name='referralstatus').drop(op.get_bind(), checkfirst=True)
