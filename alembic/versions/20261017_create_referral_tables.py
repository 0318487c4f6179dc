"""Create referral program tables

Revision ID: 20261017_create_referral_tables
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision = '20261017_create_referral_tables'
down_revision = None
branch_labels = None
depends_on = None


def profile_columns():
    """Columns shared by referral_users and influencers."""
    return [
        sa.Column('referral_code', sa.String(32), unique=True, nullable=False, index=True,
                  comment='Upper-case code shared with friends'),
        sa.Column('kyc_verified', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('kyc_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('preferred_payout_method', sa.String(20), nullable=False, server_default='bank',
                  comment='bank, upi'),
        sa.Column('bank_account_holder_name', sa.String(200), nullable=True),
        sa.Column('bank_account_number', sa.String(20), nullable=True),
        sa.Column('bank_ifsc', sa.String(11), nullable=True),
        sa.Column('bank_name', sa.String(100), nullable=True),
        sa.Column('upi_id', sa.String(100), nullable=True),
        sa.Column('total_referrals', sa.Integer, nullable=False, server_default='0'),
        sa.Column('converted_referrals', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_sales', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    ]


def money(name, comment=None):
    return sa.Column(name, sa.Numeric(12, 2), nullable=False, server_default='0', comment=comment)


def upgrade() -> None:
    op.create_table(
        'referral_users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True,
                  comment='Identity service user id'),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(200), nullable=True),
        *profile_columns(),
    )

    op.create_table(
        'influencers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), unique=True, nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(15), nullable=True),
        sa.Column('username', sa.String(50), unique=True, nullable=False),
        sa.Column('tier', sa.String(20), nullable=False, server_default='bronze',
                  comment='bronze, silver, gold, platinum, diamond'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending',
                  comment='pending, approved, rejected, blocked'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', UUID(as_uuid=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        *profile_columns(),
    )

    op.create_table(
        'commission_accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('referrer_kind', sa.String(20), nullable=False, comment='user, influencer'),
        sa.Column('referrer_id', UUID(as_uuid=True), nullable=False),
        money('pending_amount', 'Credited, not yet withdrawable'),
        money('available_amount', 'Withdrawable'),
        money('reserved_amount', 'Held by open payout requests'),
        money('paid_amount', 'Cumulative disbursed'),
        money('total_earned', 'Cumulative credited, net of reversals'),
        money('liability_amount', 'Reversals that could not be recovered (already paid out)'),
        sa.Column('version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint('referrer_kind', 'referrer_id', name='uq_commission_account_referrer'),
        sa.CheckConstraint(
            'pending_amount >= 0 AND available_amount >= 0 AND reserved_amount >= 0 '
            'AND paid_amount >= 0 AND liability_amount >= 0',
            name='ck_commission_accounts_non_negative'
        ),
    )

    op.create_table(
        'referrals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('referrer_kind', sa.String(20), nullable=False, comment='user, influencer'),
        sa.Column('referrer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('referred_user_id', UUID(as_uuid=True), unique=True, nullable=False, index=True),
        sa.Column('referral_code', sa.String(32), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending',
                  comment='pending, converted, expired'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('order_id', UUID(as_uuid=True), unique=True, nullable=True),
        sa.Column('order_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('commission_rate', sa.Numeric(12, 2), nullable=True,
                  comment='Percentage applied at conversion'),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('commission_status', sa.String(20), nullable=True,
                  comment='pending, matured, reversed'),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('matured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reversed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index('ix_referrals_referrer', 'referrals', ['referrer_kind', 'referrer_id'])
    op.create_index('ix_referrals_status_expires', 'referrals', ['status', 'expires_at'])

    op.create_table(
        'payouts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('payout_number', sa.String(30), unique=True, nullable=False,
                  comment='Human readable reference'),
        sa.Column('referrer_kind', sa.String(20), nullable=False),
        sa.Column('referrer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('account_id', UUID(as_uuid=True),
                  sa.ForeignKey('commission_accounts.id', ondelete='RESTRICT'),
                  nullable=False, index=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payout_method', sa.String(20), nullable=False, comment='bank, upi'),
        sa.Column('bank_account_holder_name', sa.String(200), nullable=True),
        sa.Column('bank_account_number', sa.String(20), nullable=True),
        sa.Column('bank_ifsc', sa.String(11), nullable=True),
        sa.Column('bank_name', sa.String(100), nullable=True),
        sa.Column('upi_id', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending',
                  comment='pending, approved, paid, rejected, failed'),
        sa.Column('transaction_reference', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('processed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index('ix_payouts_status', 'payouts', ['status'])
    op.create_index('ix_payouts_referrer', 'payouts', ['referrer_kind', 'referrer_id'])

    op.create_table(
        'commission_liabilities',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('account_id', UUID(as_uuid=True),
                  sa.ForeignKey('commission_accounts.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('referral_id', UUID(as_uuid=True), nullable=True),
        sa.Column('order_id', UUID(as_uuid=True), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='open',
                  comment='open, resolved'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('resolved_by', UUID(as_uuid=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index('ix_commission_liabilities_status', 'commission_liabilities', ['status'])


def downgrade() -> None:
    op.drop_table('commission_liabilities')
    op.drop_table('payouts')
    op.drop_table('referrals')
    op.drop_table('commission_accounts')
    op.drop_table('influencers')
    op.drop_table('referral_users')
