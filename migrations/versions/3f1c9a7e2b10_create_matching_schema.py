"""create matching schema

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-19 09:12:41.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c9a7e2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'queue_entries',
        sa.Column('uid', sa.String(128), primary_key=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('gender', sa.String(32)),
        sa.Column('want_gender', sa.String(32)),
        sa.Column('exclusions', sa.JSON(), server_default='[]'),
        sa.Column('enqueued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_heartbeat_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('waiting', 'locking', 'error')", name='ck_queue_entries_status'),
    )
    op.create_index('idx_queue_entries_status_enqueued', 'queue_entries', ['status', 'enqueued_at'])
    op.create_index('idx_queue_entries_heartbeat', 'queue_entries', ['last_heartbeat_at'])

    op.create_table(
        'blocks',
        sa.Column('blocker_uid', sa.String(128), primary_key=True),
        sa.Column('blocked_uid', sa.String(128), primary_key=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('reason_code', sa.String(64)),
        sa.Column('note', sa.Text(), server_default=''),
        sa.Column('source', sa.String(32), server_default='call'),
        sa.Column('effect_scopes', sa.JSON(), server_default='["match", "message", "call"]'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('active', 'inactive')", name='ck_blocks_status'),
    )
    op.create_index('idx_blocks_blocked_uid', 'blocks', ['blocked_uid'])

    op.create_table(
        'rooms',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user1', sa.String(128), nullable=False),
        sa.Column('user2', sa.String(128), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('user1_heartbeat_at', sa.DateTime(timezone=True)),
        sa.Column('user2_heartbeat_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint('user1 <> user2', name='ck_rooms_distinct_users'),
        sa.CheckConstraint("status IN ('pending', 'active', 'ended')", name='ck_rooms_status'),
    )
    op.create_index('idx_rooms_user1', 'rooms', ['user1'])
    op.create_index('idx_rooms_user2', 'rooms', ['user2'])

    op.create_table(
        'call_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user1', sa.String(128), nullable=False),
        sa.Column('user2', sa.String(128), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('max_minutes_cap', sa.Integer(), nullable=False),
        sa.Column('extension_history', sa.JSON(), server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('ended_at', sa.DateTime(timezone=True)),
        sa.Column('end_reason', sa.String(32)),
        sa.CheckConstraint("status IN ('active', 'ended')", name='ck_call_sessions_status'),
        sa.CheckConstraint('ends_at >= started_at', name='ck_call_sessions_ends_after_start'),
    )
    op.create_index('idx_call_sessions_status_ends', 'call_sessions', ['status', 'ends_at'])

    op.create_table(
        'participants',
        sa.Column('uid', sa.String(128), primary_key=True),
        # Intentionally no foreign key to rooms: sweeps heal dangling pointers
        sa.Column('active_room_id', sa.Uuid(), nullable=True),
        sa.Column('match_phase', sa.String(10), nullable=False, server_default='idle'),
        sa.Column('last_heartbeat_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("match_phase IN ('idle', 'matched')", name='ck_participants_match_phase'),
    )
    op.create_index('idx_participants_active_room', 'participants', ['active_room_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('participants')
    op.drop_table('call_sessions')
    op.drop_table('rooms')
    op.drop_table('blocks')
    op.drop_table('queue_entries')
