"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2024-03-01

Creates all database tables for the batch assessment backend:
- coaches: Staff who assess students or are responsible for them
- students: Gymnasts, each with an optional responsible coach
- defined_skills: Catalogue of assessable skills with max scores
- skill_assessments: One student's skill results for one (title, date)

Also creates indexes for the batch lookup and coach filters.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Coaches Table ─────────────────────────────────────────
    op.create_table(
        'coaches',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('full_name', sa.Text(), nullable=False),
        sa.Column('role', sa.Text(), nullable=True),
    )

    # ── Students Table ────────────────────────────────────────
    op.create_table(
        'students',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('full_name', sa.Text(), nullable=False),
        sa.Column('coach_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('coaches.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Defined Skills Table ──────────────────────────────────
    op.create_table(
        'defined_skills',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False, unique=True),
        sa.Column('max_score', sa.Numeric(precision=10, scale=2),
                  nullable=False, server_default='10'),
    )

    # ── Skill Assessments Table ───────────────────────────────
    op.create_table(
        'skill_assessments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('student_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('coach_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('coaches.id'), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='normal'),
        sa.Column('skills', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('total_score', sa.Numeric(precision=10, scale=2),
                  nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('normal', 'absent')", name='ck_skill_assessments_status'),
    )

    # A batch is every row sharing (title, date)
    op.create_index('ix_skill_assessments_title_date', 'skill_assessments', ['title', 'date'])
    op.create_index('ix_skill_assessments_coach_id', 'skill_assessments', ['coach_id'])
    op.create_index('ix_skill_assessments_student_id', 'skill_assessments', ['student_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_skill_assessments_student_id', table_name='skill_assessments')
    op.drop_index('ix_skill_assessments_coach_id', table_name='skill_assessments')
    op.drop_index('ix_skill_assessments_title_date', table_name='skill_assessments')
    op.drop_table('skill_assessments')
    op.drop_table('defined_skills')
    op.drop_table('students')
    op.drop_table('coaches')
