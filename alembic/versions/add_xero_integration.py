"""add_xero_integration

Revision ID: add_xero_integration
Revises: 4b2e8f1a9c03
Create Date: 2026-09-28 11:05:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'add_xero_integration'
down_revision: Union[str, Sequence[str], None] = '4b2e8f1a9c03'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema to add Xero integration tables."""

    # Create xero_connections table
    op.create_table('xero_connections',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('tenant_name', sa.String(), nullable=True),
        sa.Column('tenant_type', sa.String(), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('status_message', sa.Text(), nullable=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=True),
        sa.Column('sync_frequency', sa.String(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('next_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'tenant_id', name='uq_xero_connections_user_tenant')
    )
    op.create_index(op.f('ix_xero_connections_user_id'), 'xero_connections', ['user_id'], unique=False)
    op.create_index(op.f('ix_xero_connections_status'), 'xero_connections', ['status'], unique=False)

    # Create xero_account_mappings table
    op.create_table('xero_account_mappings',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('connection_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('xero_account_id', sa.String(), nullable=False),
        sa.Column('xero_account_name', sa.String(), nullable=True),
        sa.Column('xero_account_code', sa.String(), nullable=True),
        sa.Column('xero_account_type', sa.String(), nullable=True),
        sa.Column('local_account_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_sync_enabled', sa.Boolean(), nullable=True),
        sa.Column('last_transaction_date', sa.Date(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['connection_id'], ['xero_connections.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['local_account_id'], ['accounts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('connection_id', 'xero_account_id', name='uq_xero_account_mappings_connection_account')
    )
    op.create_index(op.f('ix_xero_account_mappings_connection_id'), 'xero_account_mappings', ['connection_id'], unique=False)
    op.create_index(op.f('ix_xero_account_mappings_local_account_id'), 'xero_account_mappings', ['local_account_id'], unique=False)

    # Create xero_sync_logs table
    op.create_table('xero_sync_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('connection_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sync_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('accounts_synced', sa.Integer(), nullable=True),
        sa.Column('transactions_imported', sa.Integer(), nullable=True),
        sa.Column('transactions_skipped', sa.Integer(), nullable=True),
        sa.Column('transactions_updated', sa.Integer(), nullable=True),
        sa.Column('api_calls_used', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('error_code', sa.String(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_details', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['connection_id'], ['xero_connections.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_xero_sync_logs_connection_id'), 'xero_sync_logs', ['connection_id'], unique=False)
    op.create_index(op.f('ix_xero_sync_logs_status'), 'xero_sync_logs', ['status'], unique=False)
    op.create_index(op.f('ix_xero_sync_logs_started_at'), 'xero_sync_logs', ['started_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema to remove Xero integration."""

    op.drop_index(op.f('ix_xero_sync_logs_started_at'), table_name='xero_sync_logs')
    op.drop_index(op.f('ix_xero_sync_logs_status'), table_name='xero_sync_logs')
    op.drop_index(op.f('ix_xero_sync_logs_connection_id'), table_name='xero_sync_logs')
    op.drop_table('xero_sync_logs')

    op.drop_index(op.f('ix_xero_account_mappings_local_account_id'), table_name='xero_account_mappings')
    op.drop_index(op.f('ix_xero_account_mappings_connection_id'), table_name='xero_account_mappings')
    op.drop_table('xero_account_mappings')

    op.drop_index(op.f('ix_xero_connections_status'), table_name='xero_connections')
    op.drop_index(op.f('ix_xero_connections_user_id'), table_name='xero_connections')
    op.drop_table('xero_connections')
