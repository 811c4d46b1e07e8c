"""Create affiliate schema.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create levels, users, referrals, promotions and commission_payouts."""

    op.create_table(
        'levels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, comment='Ladder position, starts at 1'),
        sa.Column('commission_rate', sa.DECIMAL(5, 4), nullable=False, comment='Fraction of the purchase paid to the holder'),
        sa.Column('min_direct', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_indirect', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('color', sa.String(20), nullable=False, server_default='#000000'),
        sa.Column('icon', sa.String(20), nullable=True),
        sa.Column('requirements_description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('"order" >= 1', name='check_level_order_positive'),
        sa.CheckConstraint(
            'commission_rate >= 0 AND commission_rate <= 1',
            name='check_level_commission_rate_range'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order'),
    )
    op.create_index('ix_levels_order', 'levels', ['order'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('level_id', sa.Integer(), nullable=True, comment='Null only before the first level assignment'),
        sa.Column('referred_by', sa.Integer(), nullable=True, comment='Single referral parent, set at most once'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('direct_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('indirect_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('referred_by IS NULL OR referred_by <> id', name='check_user_not_self_referred'),
        sa.CheckConstraint('direct_count >= 0', name='check_user_direct_count_non_negative'),
        sa.CheckConstraint('indirect_count >= 0', name='check_user_indirect_count_non_negative'),
        sa.CheckConstraint('total_earnings >= 0', name='check_user_total_earnings_non_negative'),
        sa.ForeignKeyConstraint(['level_id'], ['levels.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['referred_by'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_level_id', 'users', ['level_id'])
    op.create_index('ix_users_referred_by', 'users', ['referred_by'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('referred_id', sa.Integer(), nullable=False),
        sa.Column('level_in_chain', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('commission', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='approved'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('referrer_id <> referred_id', name='check_referral_not_self'),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['referred_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referred_id'),
    )
    op.create_index('ix_referrals_referrer_id', 'referrals', ['referrer_id'])
    op.create_index('idx_referrals_referrer_created', 'referrals', ['referrer_id', 'created_at'])

    op.create_table(
        'promotions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('from_level_id', sa.Integer(), nullable=True),
        sa.Column('to_level_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(100), nullable=False),
        sa.Column('snapshot_json', sa.JSON(), nullable=False, comment='Evaluation at promotion time'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_level_id'], ['levels.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['to_level_id'], ['levels.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_promotions_user_id', 'promotions', ['user_id'])
    op.create_index('idx_promotions_user_created', 'promotions', ['user_id', 'created_at'])

    op.create_table(
        'commission_payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('payment_id', sa.String(255), nullable=False),
        sa.Column('beneficiary_id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('level_id', sa.Integer(), nullable=True, comment='Beneficiary level at payout time'),
        sa.Column('base_amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('rate_applied', sa.DECIMAL(5, 4), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('depth', sa.Integer(), nullable=False, comment='Hops from buyer (1 = direct referrer)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('depth >= 1', name='check_payout_depth_positive'),
        sa.CheckConstraint('amount >= 0', name='check_payout_amount_non_negative'),
        sa.ForeignKeyConstraint(['beneficiary_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['level_id'], ['levels.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'payment_id', 'beneficiary_id',
            name='uq_commission_payouts_payment_beneficiary'
        ),
    )
    op.create_index('ix_commission_payouts_payment_id', 'commission_payouts', ['payment_id'])
    op.create_index('ix_commission_payouts_beneficiary_id', 'commission_payouts', ['beneficiary_id'])
    op.create_index('ix_commission_payouts_created_at', 'commission_payouts', ['created_at'])


def downgrade() -> None:
    """Drop the affiliate schema."""
    op.drop_table('commission_payouts')
    op.drop_table('promotions')
    op.drop_table('referrals')
    op.drop_table('users')
    op.drop_table('levels')
