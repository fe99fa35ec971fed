"""content items, client registrations and sync log

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261017_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'content_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False, server_default=''),
        sa.Column('summary', sa.Text(), nullable=False, server_default=''),
        sa.Column(
            'status', sa.String(length=32), nullable=False,
            server_default='draft'
        ),
        sa.Column('ordering', sa.Integer, nullable=False, server_default='0'),
        sa.Column('course_id', sa.Integer, nullable=True),
        sa.Column('parent_id', sa.Integer, nullable=True),
        sa.Column('stable_id', sa.String(length=64), nullable=True),
        sa.Column('origin_id', sa.Integer, nullable=True),
        sa.Column('featured_media', sa.String(length=255), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('taxonomies', sa.JSON(), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column(
            'created_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.Column(
            'updated_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.UniqueConstraint(
            'kind', 'slug', name='uq_content_items_kind_slug'
        ),
    )
    op.create_index('ix_content_items_kind', 'content_items', ['kind'])
    op.create_index(
        'ix_content_items_kind_ordering', 'content_items', ['kind', 'ordering']
    )
    op.create_index(
        'ix_content_items_stable_id', 'content_items', ['stable_id'],
        unique=True
    )
    op.create_index('ix_content_items_origin_id', 'content_items', ['origin_id'])
    op.create_index('ix_content_items_course_id', 'content_items', ['course_id'])
    op.create_index('ix_content_items_parent_id', 'content_items', ['parent_id'])

    op.create_table(
        'client_registrations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('endpoint_url', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=200), nullable=False),
        sa.Column('secret', sa.String(length=128), nullable=True),
        sa.Column(
            'first_seen_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.Column(
            'last_seen_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
    )
    op.create_index(
        'ix_client_registrations_endpoint_url', 'client_registrations',
        ['endpoint_url'], unique=True
    )

    op.create_table(
        'sync_log',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('direction', sa.String(length=16), nullable=False),
        sa.Column('content_kind', sa.String(length=16), nullable=False),
        sa.Column(
            'content_ref', sa.String(length=64), nullable=False,
            server_default='0'
        ),
        sa.Column('outcome', sa.String(length=16), nullable=False),
        sa.Column('message', sa.Text(), nullable=False, server_default=''),
        sa.Column(
            'created_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
    )
    op.create_index('ix_sync_log_direction', 'sync_log', ['direction'])
    op.create_index('ix_sync_log_content_kind', 'sync_log', ['content_kind'])
    op.create_index('ix_sync_log_outcome', 'sync_log', ['outcome'])
    op.create_index('ix_sync_log_created_at', 'sync_log', ['created_at'])


def downgrade() -> None:
    op.drop_table('sync_log')
    op.drop_index(
        'ix_client_registrations_endpoint_url',
        table_name='client_registrations'
    )
    op.drop_table('client_registrations')
    for name in (
        'ix_content_items_parent_id', 'ix_content_items_course_id',
        'ix_content_items_origin_id', 'ix_content_items_stable_id',
        'ix_content_items_kind_ordering', 'ix_content_items_kind',
    ):
        op.drop_index(name, table_name='content_items')
    op.drop_table('content_items')
