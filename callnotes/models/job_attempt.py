import enum
from uuid import uuid4

from ..extensions import db
from ..utils.clock import utcnow


class JobStage(str, enum.Enum):
    # TRANSCRIPTION covers both speech-to-text and translation
    TRANSCRIPTION = "TRANSCRIPTION"
    FORMATTER = "FORMATTER"


class JobAttempt(db.Model):
    """Append-only record of one failed pipeline attempt. Rows are never updated."""
    __tablename__ = "job_attempts"
    __table_args__ = (
        db.UniqueConstraint("call_id", "stage", "attempt_no", name="uq_job_attempts_call_stage_no"),
    )
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid4()))
    call_id = db.Column(db.String(36), nullable=False, index=True)
    stage = db.Column(db.Enum(JobStage, native_enum=False, length=32), nullable=False)
    attempt_no = db.Column(db.Integer, nullable=False)
    error_code = db.Column(db.String(100), nullable=True)
    next_retry_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
