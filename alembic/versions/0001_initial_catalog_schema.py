"""Initial catalog synchronization schema

Revision ID: 0001_initial_catalog_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_catalog_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the synchronization tables.

    Creates:
    1. universities - catalog entities
    2. university_sources - tracked websites with content hash and error state
    3. university_profiles - append-only versioned profile snapshots
    4. update_logs - one audit row per update attempt
    """
    op.create_table(
        'universities',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(500), nullable=False),
        sa.Column('name_en', sa.String(500), nullable=True),
        sa.Column('country', sa.String(100), nullable=False),
        sa.Column('city', sa.String(200), nullable=False),
        sa.Column('website_url', sa.String(1000), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'university_sources',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'university_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('universities.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('url', sa.String(2000), nullable=False, unique=True),
        sa.Column('source_type', sa.String(20), nullable=False, server_default='website'),
        sa.Column('current_hash', sa.String(64), nullable=True),
        sa.Column('last_checked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_parsed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('last_error_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("source_type IN ('website', 'api', 'manual')", name='ck_university_sources_type'),
    )
    op.create_index('ix_university_sources_university_id', 'university_sources', ['university_id'])
    op.create_index('ix_university_sources_last_checked_at', 'university_sources', ['last_checked_at'])
    op.create_index('ix_university_sources_is_active', 'university_sources', ['is_active'])

    op.create_table(
        'university_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'university_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('universities.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('profile_json', postgresql.JSONB(), nullable=False),
        sa.Column('language', sa.String(10), nullable=False, server_default='ru'),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('university_id', 'language', 'version', name='uq_university_profiles_version'),
        sa.CheckConstraint('version > 0', name='ck_university_profiles_version_positive'),
    )
    op.create_index(
        'ix_university_profiles_latest',
        'university_profiles',
        ['university_id', 'language', 'version'],
    )

    op.create_table(
        'update_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'source_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('university_sources.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('changes_detected', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('completeness_score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'success', 'failed', 'skipped')",
            name='ck_update_logs_status',
        ),
    )
    op.create_index('ix_update_logs_source_id', 'update_logs', ['source_id'])
    op.create_index('ix_update_logs_status', 'update_logs', ['status'])


def downgrade() -> None:
    op.drop_index('ix_update_logs_status', table_name='update_logs')
    op.drop_index('ix_update_logs_source_id', table_name='update_logs')
    op.drop_table('update_logs')

    op.drop_index('ix_university_profiles_latest', table_name='university_profiles')
    op.drop_table('university_profiles')

    op.drop_index('ix_university_sources_is_active', table_name='university_sources')
    op.drop_index('ix_university_sources_last_checked_at', table_name='university_sources')
    op.drop_index('ix_university_sources_university_id', table_name='university_sources')
    op.drop_table('university_sources')

    op.drop_table('universities')
