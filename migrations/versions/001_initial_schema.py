"""Initial schema: import sources, import jobs and product versions

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Create import_sources table
    op.create_table(
        'import_sources',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('source_id', sa.String(length=255), nullable=False),
        sa.Column('source_name', sa.String(length=255), nullable=False),
        sa.Column('source_type', sa.String(length=20), nullable=False, server_default='file'),
        sa.Column('field_mapping', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('auto_publish_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('min_score_threshold', sa.Integer(), nullable=False, server_default='80'),
        sa.Column('required_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('overwrite_level', sa.String(length=20), nullable=False, server_default='automatic'),
        sa.Column('limits', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('default_language', sa.String(length=10), nullable=True),
        sa.Column('api_config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('stats', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        *_timestamps(),
        sa.CheckConstraint('min_score_threshold >= 0 AND min_score_threshold <= 100', name='check_min_score_threshold'),
        sa.CheckConstraint("overwrite_level IN ('automatic', 'manual')", name='check_overwrite_level'),
    )
    op.create_index('ix_import_sources_source_id', 'import_sources', ['source_id'], unique=True)

    # Create import_jobs table
    op.create_table(
        'import_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('job_id', sa.String(length=255), nullable=False),
        sa.Column('source_id', sa.String(length=255), nullable=False),
        sa.Column('file_name', sa.String(length=500), nullable=True),
        sa.Column('file_url', sa.Text(), nullable=True),
        sa.Column('api_config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('batch_id', sa.String(length=255), nullable=True),
        sa.Column('batch_part', sa.Integer(), nullable=True),
        sa.Column('batch_total_parts', sa.Integer(), nullable=True),
        sa.Column('batch_total_items', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('total_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auto_published_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('import_errors', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name='check_import_job_status',
        ),
    )
    op.create_index('ix_import_jobs_job_id', 'import_jobs', ['job_id'], unique=True)
    op.create_index('ix_import_jobs_source_id', 'import_jobs', ['source_id'])
    op.create_index('ix_import_jobs_batch_id', 'import_jobs', ['batch_id'])
    op.create_index('ix_import_jobs_status', 'import_jobs', ['status'])

    # Create product_versions table
    op.create_table(
        'product_versions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('entity_code', sa.String(length=255), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_current_published', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('sku', sa.String(length=255), nullable=True),
        sa.Column('completeness_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('critical_issues', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('auto_publish_eligible', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('auto_publish_reason', sa.Text(), nullable=True),
        sa.Column('manually_edited', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('manually_edited_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('locked_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('last_manual_update_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('has_conflict', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('conflict_data', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('source', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('analytics', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        *_timestamps(),
        sa.UniqueConstraint('entity_code', 'version', name='unique_entity_code_version'),
        sa.CheckConstraint('version >= 1', name='check_version_positive'),
        sa.CheckConstraint("status IN ('draft', 'published', 'archived')", name='check_product_version_status'),
        sa.CheckConstraint(
            "NOT is_current_published OR (is_current AND status = 'published')",
            name='check_current_published',
        ),
        sa.CheckConstraint(
            'completeness_score >= 0 AND completeness_score <= 100',
            name='check_completeness_score',
        ),
    )
    op.create_index('ix_product_versions_entity_code', 'product_versions', ['entity_code'])
    # At most one current version per entity code
    op.create_index(
        'uq_product_versions_current',
        'product_versions',
        ['entity_code'],
        unique=True,
        postgresql_where=sa.text('is_current'),
    )
    op.create_index(
        'idx_product_versions_current_published',
        'product_versions',
        ['entity_code'],
        postgresql_where=sa.text('is_current_published'),
    )
    op.create_index('idx_product_versions_data', 'product_versions', ['data'], postgresql_using='gin')


def downgrade() -> None:
    op.drop_index('idx_product_versions_data', table_name='product_versions')
    op.drop_index('idx_product_versions_current_published', table_name='product_versions')
    op.drop_index('uq_product_versions_current', table_name='product_versions')
    op.drop_index('ix_product_versions_entity_code', table_name='product_versions')
    op.drop_table('product_versions')

    op.drop_index('ix_import_jobs_status', table_name='import_jobs')
    op.drop_index('ix_import_jobs_batch_id', table_name='import_jobs')
    op.drop_index('ix_import_jobs_source_id', table_name='import_jobs')
    op.drop_index('ix_import_jobs_job_id', table_name='import_jobs')
    op.drop_table('import_jobs')

    op.drop_index('ix_import_sources_source_id', table_name='import_sources')
    op.drop_table('import_sources')
