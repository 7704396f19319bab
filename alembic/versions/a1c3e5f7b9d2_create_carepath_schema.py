"""create carepath schema

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_FILTER = sa.text("status IN ('assigned', 'in_progress')")
STATUS_CHECK = "status IN ('assigned', 'in_progress', 'completed', 'dropped')"


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table('users',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('first_name', sa.String(length=100), nullable=False),
    sa.Column('last_name', sa.String(length=100), nullable=False),
    sa.Column('role', sa.String(length=20), nullable=False),
    sa.Column('date_of_birth', sa.Date(), nullable=True),
    sa.Column('gender', sa.String(length=20), nullable=True),
    sa.Column('phone', sa.String(length=30), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
    *_timestamps(),
    sa.CheckConstraint("role IN ('admin', 'patient')", name='ck_users_role'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_index('idx_users_role', 'users', ['role'], unique=False)

    op.create_table('categories',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )

    op.create_table('programs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('title', sa.String(length=200), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('category_id', sa.UUID(), sa.ForeignKey('categories.id'), nullable=False),
    sa.Column('duration_days', sa.Integer(), nullable=True),
    sa.Column('is_self_paced', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
    sa.Column('created_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=True),
    *_timestamps(),
    sa.CheckConstraint('duration_days IS NULL OR duration_days > 0', name='ck_programs_duration'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_programs_category', 'programs', ['category_id', 'is_active'], unique=False)

    op.create_table('modules',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('program_id', sa.UUID(), sa.ForeignKey('programs.id'), nullable=False),
    sa.Column('title', sa.String(length=200), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('sequence_number', sa.Integer(), nullable=False),
    sa.Column('estimated_minutes', sa.Integer(), nullable=True),
    sa.Column('is_required', sa.Boolean(), nullable=False, server_default='true'),
    sa.Column('created_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=True),
    *_timestamps(),
    sa.CheckConstraint('sequence_number >= 1', name='ck_modules_sequence'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_modules_program_sequence', 'modules', ['program_id', 'sequence_number'], unique=False)

    op.create_table('content_items',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('module_id', sa.UUID(), sa.ForeignKey('modules.id'), nullable=False),
    sa.Column('title', sa.String(length=200), nullable=False),
    sa.Column('content_type', sa.String(length=20), nullable=False),
    sa.Column('content', sa.Text(), nullable=False, server_default=''),
    sa.Column('sequence_number', sa.Integer(), nullable=False),
    sa.Column('created_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=True),
    *_timestamps(),
    sa.CheckConstraint(
        "content_type IN ('document', 'link', 'video', 'text', 'assessment')", name='ck_content_items_type'
    ),
    sa.CheckConstraint('sequence_number >= 1', name='ck_content_items_sequence'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_content_items_module_sequence', 'content_items', ['module_id', 'sequence_number'], unique=False)

    op.create_table('assessments',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('content_item_id', sa.UUID(), sa.ForeignKey('content_items.id'), nullable=False),
    sa.Column('title', sa.String(length=200), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('passing_score', sa.Integer(), nullable=False),
    sa.Column('time_limit_minutes', sa.Integer(), nullable=True),
    sa.Column('created_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=True),
    *_timestamps(),
    sa.CheckConstraint('passing_score >= 0 AND passing_score <= 100', name='ck_assessments_passing'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('content_item_id')
    )

    op.create_table('questions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('assessment_id', sa.UUID(), sa.ForeignKey('assessments.id'), nullable=False),
    sa.Column('question_text', sa.Text(), nullable=False),
    sa.Column('question_type', sa.String(length=20), nullable=False),
    sa.Column('points', sa.Integer(), nullable=False),
    sa.Column('sequence_number', sa.Integer(), nullable=False),
    *_timestamps(),
    sa.CheckConstraint(
        "question_type IN ('multiple_choice', 'true_false', 'text_response')", name='ck_questions_type'
    ),
    sa.CheckConstraint('points > 0', name='ck_questions_points'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_questions_assessment_sequence', 'questions', ['assessment_id', 'sequence_number'], unique=False)

    op.create_table('question_options',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('question_id', sa.UUID(), sa.ForeignKey('questions.id'), nullable=False),
    sa.Column('option_text', sa.Text(), nullable=False),
    sa.Column('is_correct', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('sequence_number', sa.Integer(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_question_options_question', 'question_options', ['question_id'], unique=False)

    op.create_table('category_enrollments',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('patient_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
    sa.Column('category_id', sa.UUID(), sa.ForeignKey('categories.id'), nullable=False),
    sa.Column('enrolled_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=True),
    sa.Column('start_date', sa.Date(), nullable=False),
    sa.Column('completed_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='in_progress'),
    *_timestamps(),
    sa.CheckConstraint(STATUS_CHECK, name='ck_category_enrollments_status'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_category_enrollments_patient', 'category_enrollments', ['patient_id', 'status'], unique=False)
    # At most one active category per patient
    op.create_index(
        'uq_category_enrollments_active_patient', 'category_enrollments', ['patient_id'],
        unique=True, postgresql_where=ACTIVE_FILTER
    )

    op.create_table('program_enrollments',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('patient_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
    sa.Column('program_id', sa.UUID(), sa.ForeignKey('programs.id'), nullable=False),
    sa.Column('category_enrollment_id', sa.UUID(), sa.ForeignKey('category_enrollments.id'), nullable=True),
    sa.Column('enrolled_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=True),
    sa.Column('start_date', sa.Date(), nullable=False),
    sa.Column('expected_end_date', sa.Date(), nullable=True),
    sa.Column('completed_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='in_progress'),
    *_timestamps(),
    sa.CheckConstraint(STATUS_CHECK, name='ck_program_enrollments_status'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_program_enrollments_patient', 'program_enrollments', ['patient_id', 'status'], unique=False)
    op.create_index('idx_program_enrollments_program', 'program_enrollments', ['program_id'], unique=False)
    op.create_index(
        'uq_program_enrollments_active_patient_program', 'program_enrollments', ['patient_id', 'program_id'],
        unique=True, postgresql_where=ACTIVE_FILTER
    )

    op.create_table('module_progress',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('patient_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
    sa.Column('module_id', sa.UUID(), sa.ForeignKey('modules.id'), nullable=False),
    sa.Column('enrollment_id', sa.UUID(), sa.ForeignKey('program_enrollments.id'), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='not_started'),
    sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('time_spent_seconds', sa.Integer(), nullable=False, server_default='0'),
    *_timestamps(),
    sa.CheckConstraint(
        "status IN ('not_started', 'in_progress', 'completed')", name='ck_module_progress_status'
    ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('patient_id', 'module_id', 'enrollment_id', name='uq_module_progress_row')
    )
    op.create_index('idx_module_progress_enrollment', 'module_progress', ['enrollment_id'], unique=False)

    op.create_table('assessment_attempts',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('patient_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
    sa.Column('assessment_id', sa.UUID(), sa.ForeignKey('assessments.id'), nullable=False),
    sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('score', sa.Integer(), nullable=True),
    sa.Column('passed', sa.Boolean(), nullable=True),
    sa.CheckConstraint('score IS NULL OR (score >= 0 AND score <= 100)', name='ck_attempts_score'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_attempts_patient_assessment', 'assessment_attempts', ['patient_id', 'assessment_id'], unique=False)

    op.create_table('question_responses',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('attempt_id', sa.UUID(), sa.ForeignKey('assessment_attempts.id'), nullable=False),
    sa.Column('question_id', sa.UUID(), sa.ForeignKey('questions.id'), nullable=False),
    sa.Column('selected_option_id', sa.UUID(), sa.ForeignKey('question_options.id'), nullable=True),
    sa.Column('text_response', sa.Text(), nullable=True),
    sa.Column('is_correct', sa.Boolean(), nullable=True),
    sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('grading_status', sa.String(length=20), nullable=False, server_default='graded'),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint(
        "grading_status IN ('graded', 'pending_review')", name='ck_question_responses_grading'
    ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_question_responses_attempt', 'question_responses', ['attempt_id'], unique=False)
    op.create_index('idx_question_responses_question', 'question_responses', ['question_id'], unique=False)

    op.create_table('mood_entries',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('patient_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
    sa.Column('content_item_id', sa.UUID(), sa.ForeignKey('content_items.id'), nullable=True),
    sa.Column('mood_type', sa.String(length=20), nullable=False),
    sa.Column('mood_score', sa.Integer(), nullable=False),
    sa.Column('journal_entry', sa.Text(), nullable=True),
    sa.Column('entry_timestamp', sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint(
        "mood_type IN ('happy', 'calm', 'neutral', 'stressed', 'sad', 'angry', 'anxious')",
        name='ck_mood_entries_type'
    ),
    sa.CheckConstraint('mood_score >= 1 AND mood_score <= 10', name='ck_mood_entries_score'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_mood_entries_patient_time', 'mood_entries', ['patient_id', 'entry_timestamp'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_mood_entries_patient_time', table_name='mood_entries')
    op.drop_table('mood_entries')
    op.drop_index('idx_question_responses_question', table_name='question_responses')
    op.drop_index('idx_question_responses_attempt', table_name='question_responses')
    op.drop_table('question_responses')
    op.drop_index('idx_attempts_patient_assessment', table_name='assessment_attempts')
    op.drop_table('assessment_attempts')
    op.drop_index('idx_module_progress_enrollment', table_name='module_progress')
    op.drop_table('module_progress')
    op.drop_index('uq_program_enrollments_active_patient_program', table_name='program_enrollments')
    op.drop_index('idx_program_enrollments_program', table_name='program_enrollments')
    op.drop_index('idx_program_enrollments_patient', table_name='program_enrollments')
    op.drop_table('program_enrollments')
    op.drop_index('uq_category_enrollments_active_patient', table_name='category_enrollments')
    op.drop_index('idx_category_enrollments_patient', table_name='category_enrollments')
    op.drop_table('category_enrollments')
    op.drop_index('idx_question_options_question', table_name='question_options')
    op.drop_table('question_options')
    op.drop_index('idx_questions_assessment_sequence', table_name='questions')
    op.drop_table('questions')
    op.drop_table('assessments')
    op.drop_index('idx_content_items_module_sequence', table_name='content_items')
    op.drop_table('content_items')
    op.drop_index('idx_modules_program_sequence', table_name='modules')
    op.drop_table('modules')
    op.drop_index('idx_programs_category', table_name='programs')
    op.drop_table('programs')
    op.drop_table('categories')
    op.drop_index('idx_users_role', table_name='users')
    op.drop_table('users')
