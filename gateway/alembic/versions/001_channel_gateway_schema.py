"""Channel gateway schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


ACTIVE_ONLY = sa.text("status = 'active'")


def upgrade() -> None:
    # Channel configurations
    op.create_table(
        'channel_configs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),  # whatsapp, slack, webchat, api, webhook
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('agent_id', sa.String(64), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('configuration', sa.JSON(), nullable=False),
        sa.Column('authentication', sa.JSON(), nullable=False),
        sa.Column('test_results', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_channel_configs_tenant_id', 'channel_configs', ['tenant_id'])
    op.create_index('ix_channel_configs_type', 'channel_configs', ['type'])
    op.create_index('ix_channel_configs_agent_id', 'channel_configs', ['agent_id'])

    # Conversations
    op.create_table(
        'conversations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('agent_id', sa.String(64), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('channel', sa.String(20), nullable=False),
        sa.Column('status', sa.String(10), nullable=False, server_default='active'),  # active, escalated, closed
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_conversations_agent_id', 'conversations', ['agent_id'])
    op.create_index('ix_conversations_tenant_id', 'conversations', ['tenant_id'])
    op.create_index('ix_conversations_status', 'conversations', ['status'])
    # At most one active conversation per (agent, customer, channel)
    op.create_index(
        'uq_conversations_active_thread', 'conversations',
        ['agent_id', 'customer_id', 'channel'],
        unique=True,
        postgresql_where=ACTIVE_ONLY,
        sqlite_where=ACTIVE_ONLY,
    )

    # Canonical message log (no FK to channel_configs: history outlives configs)
    op.create_table(
        'channel_messages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('channel_id', sa.String(36), nullable=False),
        sa.Column('channel_type', sa.String(20), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),  # inbound, outbound
        sa.Column('content', sa.JSON(), nullable=False),
        sa.Column('sender', sa.JSON(), nullable=False),
        sa.Column('recipient', sa.JSON(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(10), nullable=False, server_default='pending'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('conversation_id', sa.String(36), sa.ForeignKey('conversations.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('channel_id', 'external_id', name='uq_channel_messages_external_id'),
    )
    op.create_index('ix_channel_messages_channel_id', 'channel_messages', ['channel_id'])
    op.create_index('ix_channel_messages_direction', 'channel_messages', ['direction'])
    op.create_index('ix_channel_messages_timestamp', 'channel_messages', ['timestamp'])
    op.create_index('ix_channel_messages_status', 'channel_messages', ['status'])
    op.create_index('ix_channel_messages_conversation_id', 'channel_messages', ['conversation_id'])

    # Raw webhook receipts
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('channel_id', sa.String(36), nullable=False),
        sa.Column('channel_type', sa.String(20), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_webhook_events_channel_id', 'webhook_events', ['channel_id'])
    op.create_index('ix_webhook_events_event_type', 'webhook_events', ['event_type'])
    op.create_index('ix_webhook_events_timestamp', 'webhook_events', ['timestamp'])
    op.create_index('ix_webhook_events_processed', 'webhook_events', ['processed'])


def downgrade() -> None:
    op.drop_table('webhook_events')
    op.drop_table('channel_messages')
    op.drop_index('uq_conversations_active_thread', table_name='conversations')
    op.drop_table('conversations')
    op.drop_table('channel_configs')
