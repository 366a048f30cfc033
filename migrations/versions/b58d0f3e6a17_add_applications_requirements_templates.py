"""add applications, requirements and templates tables

Revision ID: b58d0f3e6a17
Revises: 4a7e2c91b3d0
Create Date: 2026-09-02 10:31:07.594120

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b58d0f3e6a17'
down_revision: Union[str, Sequence[str], None] = '4a7e2c91b3d0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _definition_columns() -> list[sa.Column]:
    """Requirement definition fields shared by template rows and application rows."""
    return [
        sa.Column('requirement_type', sa.String(length=32), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('is_optional', sa.Boolean(), nullable=False),
        sa.Column('document_type', sa.String(length=64), nullable=True),
        sa.Column('max_file_size', sa.Float(), nullable=True),
        sa.Column('allowed_file_types', sa.JSON(), nullable=True),
        sa.Column('word_limit', sa.Integer(), nullable=True),
        sa.Column('character_limit', sa.Integer(), nullable=True),
        sa.Column('test_type', sa.String(length=32), nullable=True),
        sa.Column('min_score', sa.Float(), nullable=True),
        sa.Column('max_score', sa.Float(), nullable=True),
        sa.Column('score_format', sa.String(length=255), nullable=True),
        sa.Column('application_fee_amount', sa.Float(), nullable=True),
        sa.Column('application_fee_currency', sa.String(length=8), nullable=True),
        sa.Column('application_fee_description', sa.String(length=512), nullable=True),
        sa.Column('interview_type', sa.String(length=32), nullable=True),
        sa.Column('interview_duration', sa.Integer(), nullable=True),
        sa.Column('interview_notes', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False),
    ]


def upgrade() -> None:
    # applications table
    op.create_table(
        'applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('offer_id', sa.String(length=128), nullable=False),
        sa.Column('offer_type', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('current_section_id', sa.String(length=128), nullable=True),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_applications_user', 'applications', ['user_id'], unique=False)
    op.create_index('idx_applications_status', 'applications', ['status'], unique=False)
    op.create_index('idx_applications_user_offer', 'applications', ['user_id', 'offer_id'], unique=False)

    # application_sections table
    op.create_table(
        'application_sections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('section_id', sa.String(length=128), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('is_complete', sa.Boolean(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'section_id', name='uq_application_section')
    )
    op.create_index('idx_application_sections_app', 'application_sections', ['application_id'], unique=False)

    # requirements_templates table
    op.create_table(
        'requirements_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_system_template', sa.Boolean(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_templates_category', 'requirements_templates', ['category'], unique=False)
    op.create_index('idx_templates_active_usage', 'requirements_templates', ['is_active', 'usage_count'], unique=False)

    # template_requirements table
    op.create_table(
        'template_requirements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        *_definition_columns(),
        sa.ForeignKeyConstraint(['template_id'], ['requirements_templates.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_id', 'key', name='uq_template_requirement_key')
    )
    op.create_index('idx_template_requirements_template', 'template_requirements', ['template_id'], unique=False)

    # application_requirements table
    op.create_table(
        'application_requirements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        *_definition_columns(),
        sa.Column('application_fee_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('application_fee_paid_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('linked_document_id', sa.Integer(), nullable=True),
        sa.Column('external_url', sa.String(length=1024), nullable=True),
        sa.Column('source_key', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['linked_document_id'], ['documents.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'source_key', name='uq_requirement_source')
    )
    op.create_index('idx_requirements_application', 'application_requirements', ['application_id'], unique=False)
    op.create_index('idx_requirements_app_status', 'application_requirements', ['application_id', 'status'], unique=False)
    op.create_index('idx_requirements_app_order', 'application_requirements', ['application_id', 'order'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_requirements_app_order', table_name='application_requirements')
    op.drop_index('idx_requirements_app_status', table_name='application_requirements')
    op.drop_index('idx_requirements_application', table_name='application_requirements')
    op.drop_table('application_requirements')
    op.drop_index('idx_template_requirements_template', table_name='template_requirements')
    op.drop_table('template_requirements')
    op.drop_index('idx_templates_active_usage', table_name='requirements_templates')
    op.drop_index('idx_templates_category', table_name='requirements_templates')
    op.drop_table('requirements_templates')
    op.drop_index('idx_application_sections_app', table_name='application_sections')
    op.drop_table('application_sections')
    op.drop_index('idx_applications_user_offer', table_name='applications')
    op.drop_index('idx_applications_status', table_name='applications')
    op.drop_index('idx_applications_user', table_name='applications')
    op.drop_table('applications')
