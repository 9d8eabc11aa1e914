"""create outbox_events table

Revision ID: 0002_create_outbox_events
Revises: 0001_create_payments
Create Date: 2026-10-19 00:00:00.000001
"""
from alembic import op
import sqlalchemy as sa

revision = '0002_create_outbox_events'
down_revision = '0001_create_payments'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('routing_key', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('aggregate_id', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
    )
    # relay выбирает только неопубликованные строки
    op.create_index('ix_outbox_events_published_at', 'outbox_events', ['published_at'])


def downgrade():
    op.drop_index('ix_outbox_events_published_at', table_name='outbox_events')
    op.drop_table('outbox_events')
