"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Create stores table
    op.create_table('stores',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('registration', sa.String(length=50), nullable=False),
    sa.Column('document', sa.String(length=50), nullable=True),
    sa.Column('active', sa.Boolean(), nullable=False),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('registration')
    )
    op.create_index(op.f('ix_stores_id'), 'stores', ['id'], unique=False)

    # Create products table (per-store cache of the last RP fetch)
    op.create_table('products',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('code', sa.BigInteger(), nullable=False),
    sa.Column('price', sa.Float(), nullable=False),
    sa.Column('final_price', sa.Float(), nullable=False),
    sa.Column('limit', sa.Integer(), nullable=False),
    sa.Column('store_id', sa.Integer(), nullable=False),
    sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    *_timestamps(),
    sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_products_store_id', 'products', ['store_id'], unique=False)
    op.create_index(
        'uq_products_store_code_live', 'products', ['store_id', 'code'], unique=True,
        sqlite_where=sa.text('deleted_at IS NULL'),
        postgresql_where=sa.text('deleted_at IS NULL'),
    )

    # Create integrations table
    op.create_table('integrations',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('type', sa.String(length=20), nullable=False),
    sa.Column('base_url', sa.String(length=255), nullable=False),
    sa.Column('config', JSON, nullable=True),
    sa.Column('credentials', sa.Text(), nullable=True),
    sa.Column('active', sa.Boolean(), nullable=False),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_integrations_id'), 'integrations', ['id'], unique=False)
    op.create_index(op.f('ix_integrations_type'), 'integrations', ['type'], unique=False)

    # Create notification_channels table
    op.create_table('notification_channels',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('type', sa.String(length=20), nullable=False),
    sa.Column('config', JSON, nullable=True),
    sa.Column('credentials', sa.Text(), nullable=True),
    sa.Column('active', sa.Boolean(), nullable=False),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notification_channels_id'), 'notification_channels', ['id'], unique=False)

    # Create sync_configurations table
    op.create_table('sync_configurations',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('source_integration_id', sa.Integer(), nullable=False),
    sa.Column('target_integration_id', sa.Integer(), nullable=False),
    sa.Column('notification_channel_id', sa.Integer(), nullable=True),
    sa.Column('store_ids', JSON, nullable=True),
    sa.Column('schedule', JSON, nullable=True),
    sa.Column('options', JSON, nullable=True),
    sa.Column('active', sa.Boolean(), nullable=False),
    *_timestamps(),
    sa.ForeignKeyConstraint(['source_integration_id'], ['integrations.id']),
    sa.ForeignKeyConstraint(['target_integration_id'], ['integrations.id']),
    sa.ForeignKeyConstraint(['notification_channel_id'], ['notification_channels.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_configurations_id'), 'sync_configurations', ['id'], unique=False)

    # Create sync_executions table
    op.create_table('sync_executions',
    sa.Column('id', sa.String(length=64), nullable=False),
    sa.Column('sync_config_id', sa.Integer(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('stores_processed', JSON, nullable=False),
    sa.Column('summary', JSON, nullable=True),
    sa.Column('comparison_results', JSON, nullable=True),
    sa.Column('error_details', JSON, nullable=True),
    sa.Column('execution_logs', JSON, nullable=True),
    sa.Column('run_key', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.ForeignKeyConstraint(['sync_config_id'], ['sync_configurations.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_sync_executions_status', 'sync_executions', ['status'], unique=False)
    op.create_index('idx_sync_executions_started_at', 'sync_executions', ['started_at'], unique=False)
    op.create_index('idx_sync_executions_sync_config_id', 'sync_executions', ['sync_config_id'], unique=False)
    op.create_index(
        'uq_sync_executions_running_key', 'sync_executions', ['run_key'], unique=True,
        sqlite_where=sa.text("status = 'RUNNING'"),
        postgresql_where=sa.text("status = 'RUNNING'"),
    )

    # Create log_entries table
    op.create_table('log_entries',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    sa.Column('level', sa.String(length=10), nullable=False),
    sa.Column('category', sa.String(length=50), nullable=False),
    sa.Column('message', sa.Text(), nullable=False),
    sa.Column('metadata', JSON, nullable=True),
    sa.Column('session_id', sa.String(length=64), nullable=True),
    sa.Column('source', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_log_entries_created_at_desc', 'log_entries', [sa.text('created_at DESC')], unique=False)
    op.create_index('idx_log_entries_category', 'log_entries', ['category'], unique=False)
    op.create_index('idx_log_entries_session_id', 'log_entries', ['session_id'], unique=False)


def downgrade() -> None:
    op.drop_table('log_entries')
    op.drop_table('sync_executions')
    op.drop_table('sync_configurations')
    op.drop_table('notification_channels')
    op.drop_table('integrations')
    op.drop_table('products')
    op.drop_table('stores')
