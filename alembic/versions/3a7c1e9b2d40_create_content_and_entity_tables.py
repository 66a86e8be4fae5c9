"""create content_entries and dedicated entity tables

Revision ID: 3a7c1e9b2d40
Revises:
Create Date: 2026-10-12 09:14:27.118204

content_entries is the primary document store. agents, events and
new_construction hold query-friendly copies keyed by (site_id, slug).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3a7c1e9b2d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _entity_table(name: str, *extra: sa.Column) -> None:
    op.create_table(name,
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('site_id', sa.String(length=128), nullable=False),
    sa.Column('slug', sa.String(length=128), nullable=False),
    sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    *extra,
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('site_id', 'slug', name=f'uq_{name}_site_slug'),
    schema='cms_agent'
    )
    op.create_index(op.f(f'ix_cms_agent_{name}_site_id'), name, ['site_id'], unique=False, schema='cms_agent')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('content_entries',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('site_id', sa.String(length=128), nullable=False),
    sa.Column('locale', sa.String(length=16), nullable=False),
    sa.Column('path', sa.String(length=512), nullable=False),
    sa.Column('content', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('updated_by', sa.String(length=256), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('site_id', 'locale', 'path', name='uq_content_entries_site_locale_path'),
    schema='cms_agent'
    )
    op.create_index(op.f('ix_cms_agent_content_entries_site_id'), 'content_entries', ['site_id'], unique=False, schema='cms_agent')

    _entity_table('agents')
    _entity_table('events', sa.Column('event_date', sa.Date(), nullable=True))
    _entity_table('new_construction')


def downgrade() -> None:
    """Downgrade schema."""
    for name in ('new_construction', 'events', 'agents'):
        op.drop_index(op.f(f'ix_cms_agent_{name}_site_id'), table_name=name, schema='cms_agent')
        op.drop_table(name, schema='cms_agent')
    op.drop_index(op.f('ix_cms_agent_content_entries_site_id'), table_name='content_entries', schema='cms_agent')
    op.drop_table('content_entries', schema='cms_agent')
