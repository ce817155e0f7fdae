"""initial_schema

Revision ID: initial_schema
Revises:
Create Date: 2026-10-16 09:00:00.000000

Creates the EduNotify tables:
- students, courses: admin-managed records
- results: graded course results, draft/pending until published
- notifications: one record per student per notification event
- publish_locks: lease preventing overlapping publish cycles
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


RESULT_STATUS = sa.Enum('DRAFT', 'PENDING', 'PUBLISHED', name='resultstatus')
NOTIFICATION_TYPE = sa.Enum(
    'GENERAL', 'RESULT', 'ENROLLMENT', 'ANNOUNCEMENT', 'CUSTOM', 'TEST',
    name='notificationtype',
)
NOTIFICATION_STATUS = sa.Enum('PENDING', 'SENT', 'FAILED', 'READ', name='notificationstatus')


def upgrade() -> None:
    """Create all tables."""
    print("📚 Creating EduNotify tables...")

    # 1. students
    op.create_table(
        'students',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.String(length=50), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('department', sa.String(length=100), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('cgpa', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_students_student_id', 'students', ['student_id'], unique=True)
    op.create_index('ix_students_department', 'students', ['department'])
    op.create_index('ix_students_level', 'students', ['level'])
    op.create_index('ix_students_status', 'students', ['status'])

    # 2. courses
    op.create_table(
        'courses',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('course_code', sa.String(length=20), nullable=False),
        sa.Column('course_title', sa.String(length=255), nullable=False),
        sa.Column('credit_units', sa.Integer(), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('semester', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_courses_course_code', 'courses', ['course_code'], unique=True)

    # 3. results
    op.create_table(
        'results',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('course_id', sa.BigInteger(), nullable=False),
        sa.Column('ca_score', sa.Float(), nullable=False),
        sa.Column('exam_score', sa.Float(), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('grade', sa.String(length=2), nullable=False),
        sa.Column('grade_point', sa.Float(), nullable=False),
        sa.Column('semester', sa.String(length=20), nullable=False),
        sa.Column('academic_year', sa.String(length=20), nullable=False),
        sa.Column('status', RESULT_STATUS, nullable=False, server_default='PENDING'),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'student_id', 'course_id', 'semester', 'academic_year',
            name='uq_result_student_course_term',
        ),
    )
    op.create_index('ix_results_student_id', 'results', ['student_id'])
    op.create_index('ix_results_course_id', 'results', ['course_id'])
    op.create_index('ix_results_status', 'results', ['status'])

    # 4. notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('notification_type', NOTIFICATION_TYPE, nullable=False),
        sa.Column('status', NOTIFICATION_STATUS, nullable=False, server_default='PENDING'),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sms_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_student_id', 'notifications', ['student_id'])
    op.create_index('ix_notifications_status', 'notifications', ['status'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    # 5. publish_locks
    op.create_table(
        'publish_locks',
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('name'),
    )

    print("✅ EduNotify tables created")


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('publish_locks')
    op.drop_index('ix_notifications_created_at', table_name='notifications')
    op.drop_index('ix_notifications_status', table_name='notifications')
    op.drop_index('ix_notifications_student_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_results_status', table_name='results')
    op.drop_index('ix_results_course_id', table_name='results')
    op.drop_index('ix_results_student_id', table_name='results')
    op.drop_table('results')
    op.drop_index('ix_courses_course_code', table_name='courses')
    op.drop_table('courses')
    op.drop_index('ix_students_status', table_name='students')
    op.drop_index('ix_students_level', table_name='students')
    op.drop_index('ix_students_department', table_name='students')
    op.drop_index('ix_students_student_id', table_name='students')
    op.drop_table('students')

    NOTIFICATION_STATUS.drop(op.get_bind(), checkfirst=True)
    NOTIFICATION_TYPE.drop(op.get_bind(), checkfirst=True)
    RESULT_STATUS.drop(op.get_bind(), checkfirst=True)
