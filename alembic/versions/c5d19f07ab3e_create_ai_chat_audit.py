"""create ai_chat_audit

Revision ID: c5d19f07ab3e
Revises: 8e2f4b6a1c93
Create Date: 2026-10-19 09:41:12.208731

One row per completed chat request, read back by the admin turn report.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'c5d19f07ab3e'
down_revision: Union[str, Sequence[str], None] = '8e2f4b6a1c93'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('ai_chat_audit',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('site_id', sa.String(length=128), nullable=False),
    sa.Column('actor_email', sa.String(length=256), nullable=True),
    sa.Column('action', sa.String(length=64), nullable=False),
    sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='cms_agent'
    )
    op.create_index('ix_ai_chat_audit_site_created', 'ai_chat_audit', ['site_id', 'created_at'], unique=False, schema='cms_agent')


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_ai_chat_audit_site_created', table_name='ai_chat_audit', schema='cms_agent')
    op.drop_table('ai_chat_audit', schema='cms_agent')
