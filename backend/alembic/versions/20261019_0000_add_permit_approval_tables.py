"""add_permit_approval_tables

Revision ID: add_permit_approval_tables
Revises: 
Create Date: 2026-10-19 00:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa
from permit_approvals.database_types import JSON, GUID


revision = 'add_permit_approval_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    tables = inspector.get_table_names()
    
    if 'users' not in tables:
        op.create_table(
            'users',
            sa.Column('id', GUID(), primary_key=True),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('full_name', sa.String(255), nullable=True),
            sa.Column('role', sa.Enum('USER', 'MANAGER', 'ADMIN', name='user_role'), nullable=False, server_default='USER'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
        op.create_index('ix_users_role', 'users', ['role'])
    
    if 'permits' not in tables:
        op.create_table(
            'permits',
            sa.Column('id', GUID(), primary_key=True),
            sa.Column('ref_number', sa.String(64), nullable=True),
            sa.Column('template_name', sa.String(255), nullable=True),
            sa.Column('holder_name', sa.String(255), nullable=True),
            sa.Column('holder_email', sa.String(255), nullable=True),
            sa.Column('unique_link', sa.String(64), nullable=True, unique=True),
            sa.Column('status', sa.String(), nullable=False, server_default='draft'),
            sa.Column('approved_at', sa.DateTime(), nullable=True),
            sa.Column('approved_by', GUID(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
            sa.Column('decision_source', sa.String(32), nullable=True),
            sa.Column('approval_notes', sa.Text(), nullable=True),
            sa.Column('notified_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_permits_ref_number', 'permits', ['ref_number'])
        op.create_index('ix_permits_status', 'permits', ['status'])
        op.create_index('idx_permits_status_created', 'permits', ['status', 'created_at'])
    
    if 'approval_links' not in tables:
        op.create_table(
            'approval_links',
            sa.Column('id', GUID(), primary_key=True),
            sa.Column('permit_id', GUID(), sa.ForeignKey('permits.id', ondelete='CASCADE'), nullable=False),
            sa.Column('recipient_email', sa.String(255), nullable=False),
            sa.Column('recipient_name', sa.String(255), nullable=True),
            sa.Column('token_hash', sa.String(64), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('used_at', sa.DateTime(), nullable=True),
            sa.Column('used_action', sa.String(32), nullable=True),
            sa.Column('used_comment', sa.Text(), nullable=True),
            sa.Column('metadata', JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_approval_links_token_hash', 'approval_links', ['token_hash'], unique=True)
        op.create_index('ix_approval_links_permit_id', 'approval_links', ['permit_id'])
        op.create_index('idx_approval_links_permit_recipient', 'approval_links', ['permit_id', 'recipient_email'])
    
    if 'permit_events' not in tables:
        op.create_table(
            'permit_events',
            sa.Column('id', GUID(), primary_key=True),
            sa.Column('permit_id', GUID(), sa.ForeignKey('permits.id', ondelete='CASCADE'), nullable=False),
            sa.Column('event_type', sa.String(64), nullable=False),
            sa.Column('actor', sa.String(255), nullable=False, server_default='system'),
            sa.Column('payload', JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('idx_permit_events_permit_created', 'permit_events', ['permit_id', 'created_at'])
    
    if 'email_queue' not in tables:
        op.create_table(
            'email_queue',
            sa.Column('id', GUID(), primary_key=True),
            sa.Column('to_email', sa.String(255), nullable=False),
            sa.Column('subject', sa.String(500), nullable=False),
            sa.Column('body', sa.Text(), nullable=False),
            sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('sent_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_email_queue_to_email', 'email_queue', ['to_email'])
        op.create_index('ix_email_queue_status', 'email_queue', ['status'])
    
    if 'settings' not in tables:
        op.create_table(
            'settings',
            sa.Column('key', sa.String(191), primary_key=True),
            sa.Column('value', sa.Text(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
        )


def downgrade() -> None:
    op.drop_table('settings')
    op.drop_table('email_queue')
    op.drop_table('permit_events')
    op.drop_table('approval_links')
    op.drop_table('permits')
    op.drop_table('users')
    sa.Enum(name='user_role').drop(op.get_bind(), checkfirst=True)
