"""create chat_messages, ai_chat_preferences and media_assets

Revision ID: 8e2f4b6a1c93
Revises: 3a7c1e9b2d40
Create Date: 2026-10-12 11:02:51.604377

chat_messages.seq is the arrival order within a conversation.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '8e2f4b6a1c93'
down_revision: Union[str, Sequence[str], None] = '3a7c1e9b2d40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('chat_messages',
    sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('site_id', sa.String(length=128), nullable=False),
    sa.Column('locale', sa.String(length=16), nullable=False),
    sa.Column('conversation_id', sa.String(length=64), nullable=False),
    sa.Column('role', sa.String(length=16), nullable=False),
    sa.Column('content', sa.Text(), nullable=False),
    sa.Column('tool_name', sa.String(length=64), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('seq'),
    sa.UniqueConstraint('id'),
    schema='cms_agent'
    )
    op.create_index(op.f('ix_cms_agent_chat_messages_conversation_id'), 'chat_messages', ['conversation_id'], unique=False, schema='cms_agent')

    op.create_table('ai_chat_preferences',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('site_id', sa.String(length=128), nullable=False),
    sa.Column('locale', sa.String(length=16), nullable=False),
    sa.Column('preference_key', sa.String(length=128), nullable=False),
    sa.Column('preference_value', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('site_id', 'locale', 'preference_key', name='uq_ai_chat_preferences_key'),
    schema='cms_agent'
    )

    op.create_table('media_assets',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('site_id', sa.String(length=128), nullable=False),
    sa.Column('path', sa.String(length=512), nullable=False),
    sa.Column('url', sa.Text(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('site_id', 'path', name='uq_media_assets_site_path'),
    schema='cms_agent'
    )
    op.create_index(op.f('ix_cms_agent_media_assets_site_id'), 'media_assets', ['site_id'], unique=False, schema='cms_agent')


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_cms_agent_media_assets_site_id'), table_name='media_assets', schema='cms_agent')
    op.drop_table('media_assets', schema='cms_agent')
    op.drop_table('ai_chat_preferences', schema='cms_agent')
    op.drop_index(op.f('ix_cms_agent_chat_messages_conversation_id'), table_name='chat_messages', schema='cms_agent')
    op.drop_table('chat_messages', schema='cms_agent')
