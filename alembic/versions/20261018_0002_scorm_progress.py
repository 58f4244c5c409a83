"""scorm progress snapshots

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261018_0002'
down_revision = '20261018_0001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'scorm_progress',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('learner_id', sa.String(length=64), nullable=False),
        sa.Column('course_id', sa.String(length=64), nullable=False),
        sa.Column('content_id', sa.String(length=64), nullable=False),
        sa.Column('content_type', sa.String(length=32), nullable=False),
        sa.Column(
            'lesson_status', sa.String(length=32), nullable=False,
            server_default='incomplete'
        ),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column(
            'score_raw', sa.String(length=32), nullable=False,
            server_default=''
        ),
        sa.Column(
            'time_spent', sa.String(length=32), nullable=False,
            server_default='00:00:00.00'
        ),
        sa.Column('suspend_data', sa.Text(), nullable=False, server_default=''),
        sa.Column(
            'entry', sa.String(length=16), nullable=False,
            server_default='ab-initio'
        ),
        sa.Column(
            'exit', sa.String(length=16), nullable=False,
            server_default='normal'
        ),
        sa.Column(
            'created_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.Column(
            'updated_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.UniqueConstraint(
            'learner_id', 'course_id', 'content_id', 'content_type',
            name='uq_scorm_progress_key'
        ),
    )
    op.create_index(
        'ix_scorm_progress_learner_id', 'scorm_progress', ['learner_id']
    )


def downgrade() -> None:
    op.drop_index('ix_scorm_progress_learner_id', table_name='scorm_progress')
    op.drop_table('scorm_progress')
