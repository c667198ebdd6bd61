"""Collaboration core schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table (accounts are provisioned by the identity provider)
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('orcid_id', sa.String(19), unique=True, nullable=True, index=True),
        sa.Column('given_name', sa.String(255), nullable=True),
        sa.Column('family_name', sa.String(255), nullable=True),
        sa.Column('affiliation', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Manuscripts table
    op.create_table(
        'manuscripts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('document_type', sa.String(50), nullable=False, default='manuscript'),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Manuscript collaborators table
    op.create_table(
        'manuscript_collaborators',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('manuscript_id', sa.Uuid(), sa.ForeignKey('manuscripts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('can_edit', sa.Boolean(), nullable=False, default=False),
        sa.Column('can_invite', sa.Boolean(), nullable=False, default=False),
        sa.Column('can_delete', sa.Boolean(), nullable=False, default=False),
        sa.Column('invited_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('manuscript_id', 'user_id', name='uq_manuscript_collaborator'),
    )

    # Manuscript invitations table
    op.create_table(
        'manuscript_invitations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('manuscript_id', sa.Uuid(), sa.ForeignKey('manuscripts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('invited_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('invited_user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True, index=True),
        sa.Column('email', sa.String(255), nullable=True, index=True),
        sa.Column('orcid_id', sa.String(19), nullable=True, index=True),
        sa.Column('given_name', sa.String(255), nullable=True),
        sa.Column('family_name', sa.String(255), nullable=True),
        sa.Column('affiliation', sa.String(500), nullable=True),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_manuscript_invitations_manuscript_status', 'manuscript_invitations', ['manuscript_id', 'status'])

    # Tracked changes table
    op.create_table(
        'tracked_changes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('manuscript_id', sa.Uuid(), sa.ForeignKey('manuscripts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('change_type', sa.String(50), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('old_content', sa.Text(), nullable=True),
        sa.Column('format_attributes', sa.JSON(), nullable=True),
        sa.Column('position_from', sa.Integer(), nullable=True),
        sa.Column('position_to', sa.Integer(), nullable=True),
        sa.Column('author_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('status', sa.String(50), nullable=False, default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
    )
    op.create_index('ix_tracked_changes_manuscript_status', 'tracked_changes', ['manuscript_id', 'status'])
    op.create_index('ix_tracked_changes_manuscript_created', 'tracked_changes', ['manuscript_id', 'created_at'])

    # Notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('manuscript_id', sa.Uuid(), sa.ForeignKey('manuscripts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notification_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, default=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'is_read'])
    op.create_index('ix_notifications_user_created', 'notifications', ['user_id', 'created_at'])

    # Event logs table (append-only)
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_user_time', 'event_logs', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('notifications')
    op.drop_table('tracked_changes')
    op.drop_table('manuscript_invitations')
    op.drop_table('manuscript_collaborators')
    op.drop_table('manuscripts')
    op.drop_table('users')
