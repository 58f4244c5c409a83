"""scorm package registry

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261018_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'scorm_packages',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('content_id', sa.String(length=64), nullable=False),
        sa.Column('content_type', sa.String(length=32), nullable=False),
        sa.Column('course_id', sa.String(length=64), nullable=False),
        sa.Column('source_path', sa.String(length=500), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=True),
        sa.Column(
            'created_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.Column(
            'updated_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.UniqueConstraint(
            'content_id', 'content_type', name='uq_scorm_packages_content'
        ),
    )
    op.create_index(
        'ix_scorm_packages_content_id', 'scorm_packages', ['content_id']
    )
    op.create_index(
        'ix_scorm_packages_course_id', 'scorm_packages', ['course_id']
    )


def downgrade() -> None:
    op.drop_index('ix_scorm_packages_course_id', table_name='scorm_packages')
    op.drop_index('ix_scorm_packages_content_id', table_name='scorm_packages')
    op.drop_table('scorm_packages')
