"""Create points ledger and redemption request tables

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1a9c2e7b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create accounts, append-only transactions and redemption requests."""
    op.create_table(
        'points_accounts',
        sa.Column('member_id', sa.String(64), nullable=False),
        sa.Column('member_name', sa.String(100), nullable=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('balance >= 0', name='ck_points_accounts_balance_non_negative'),
        sa.PrimaryKeyConstraint('member_id')
    )

    op.create_table(
        'redemption_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.String(64), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('verification_code', sa.String(16), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_by', sa.String(100), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.String(100), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_redemption_requests_amount_positive'),
        sa.ForeignKeyConstraint(['member_id'], ['points_accounts.member_id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    # One pending holder per code; codes are reused once the holder leaves pending
    op.create_index(
        'uq_redemption_requests_pending_code',
        'redemption_requests',
        ['verification_code'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index('ix_redemption_requests_code', 'redemption_requests', ['verification_code'])
    op.create_index('ix_redemption_requests_member_status', 'redemption_requests', ['member_id', 'status'])
    op.create_index('ix_redemption_requests_status_expires', 'redemption_requests', ['status', 'expires_at'])

    op.create_table(
        'points_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.String(64), nullable=False),
        sa.Column('transaction_type', sa.String(10), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(30), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('related_request_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_points_transactions_amount_positive'),
        sa.ForeignKeyConstraint(['member_id'], ['points_accounts.member_id'], ),
        sa.ForeignKeyConstraint(['related_request_id'], ['redemption_requests.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('related_request_id')
    )

    op.create_index('ix_points_transactions_member_created', 'points_transactions', ['member_id', 'created_at'])


def downgrade():
    """Drop ledger and redemption tables."""
    op.drop_index('ix_points_transactions_member_created', table_name='points_transactions')
    op.drop_table('points_transactions')

    op.drop_index('ix_redemption_requests_status_expires', table_name='redemption_requests')
    op.drop_index('ix_redemption_requests_member_status', table_name='redemption_requests')
    op.drop_index('ix_redemption_requests_code', table_name='redemption_requests')
    op.drop_index('uq_redemption_requests_pending_code', table_name='redemption_requests')
    op.drop_table('redemption_requests')

    op.drop_table('points_accounts')
