"""Create call_records and job_attempts

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

CALL_STATUSES = ('CREATED', 'UPLOADED', 'TRANSCRIBING', 'FORMATTING', 'READY',
                 'READY_WITH_WARNING', 'FAILED', 'FINALIZED')


def upgrade() -> None:
    op.create_table(
        'call_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('call_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.Enum(*CALL_STATUSES, name='callstatus', native_enum=False, length=32), nullable=False),
        sa.Column('audio_ref', sa.String(512), nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('detected_language', sa.String(32), nullable=True),
        sa.Column('english_transcript', sa.Text(), nullable=True),
        sa.Column('transcript_provider_id', sa.String(100), nullable=True),
        sa.Column('transcript_latency_ms', sa.Integer(), nullable=True),
        sa.Column('note_text', sa.Text(), nullable=True),
        sa.Column('note_source', sa.Enum('FORMATTER', 'RAW_TRANSLATION', name='notesource', native_enum=False, length=32), nullable=True),
        sa.Column('warning', sa.Text(), nullable=True),
        sa.Column('final_text', sa.Text(), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_call_records_user_id', 'call_records', ['user_id'])
    op.create_index('ix_call_records_call_at', 'call_records', ['call_at'])

    op.create_table(
        'job_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('call_id', sa.String(36), nullable=False),
        sa.Column('stage', sa.Enum('TRANSCRIPTION', 'FORMATTER', name='jobstage', native_enum=False, length=32), nullable=False),
        sa.Column('attempt_no', sa.Integer(), nullable=False),
        sa.Column('error_code', sa.String(100), nullable=True),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('call_id', 'stage', 'attempt_no', name='uq_job_attempts_call_stage_no'),
    )
    op.create_index('ix_job_attempts_call_id', 'job_attempts', ['call_id'])


def downgrade() -> None:
    op.drop_index('ix_job_attempts_call_id', table_name='job_attempts')
    op.drop_table('job_attempts')
    op.drop_index('ix_call_records_call_at', table_name='call_records')
    op.drop_index('ix_call_records_user_id', table_name='call_records')
    op.drop_table('call_records')
