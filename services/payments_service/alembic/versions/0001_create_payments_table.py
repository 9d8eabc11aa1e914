"""create payments table

Revision ID: 0001_create_payments
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = '0001_create_payments'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'payments',
        sa.Column('payment_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='Processing'),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('payment_system', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_payments_amount_nonneg'),
        sa.CheckConstraint("status IN ('Processing', 'Successful', 'Failed')", name='ck_payments_status_valid'),
    )
    # Add unique index on order_id: one payment per order, duplicates of OrderCreated are no-ops
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=True)


def downgrade():
    op.drop_index('ix_payments_order_id', table_name='payments')
    op.drop_table('payments')
