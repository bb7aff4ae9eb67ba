import enum
from uuid import uuid4

from ..extensions import db
from ..utils.clock import as_utc
from .base import TimestampMixin


class CallStatus(str, enum.Enum):
    CREATED = "CREATED"
    UPLOADED = "UPLOADED"
    TRANSCRIBING = "TRANSCRIBING"
    FORMATTING = "FORMATTING"
    READY = "READY"
    READY_WITH_WARNING = "READY_WITH_WARNING"
    FAILED = "FAILED"
    FINALIZED = "FINALIZED"


# no draft exists yet in these states
PRE_DRAFT_STATUSES = frozenset({
    CallStatus.CREATED,
    CallStatus.UPLOADED,
    CallStatus.TRANSCRIBING,
    CallStatus.FORMATTING,
})


class NoteSource(str, enum.Enum):
    FORMATTER = "FORMATTER"
    RAW_TRANSLATION = "RAW_TRANSLATION"


class CallRecord(db.Model, TimestampMixin):
    __tablename__ = "call_records"
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = db.Column(db.String(36), nullable=False, index=True)
    # when the call happened, as reported by the client
    call_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    status = db.Column(db.Enum(CallStatus, native_enum=False, length=32), nullable=False, default=CallStatus.CREATED)
    # key into the audio store; only set while a pipeline run may still need the audio
    audio_ref = db.Column(db.String(512), nullable=True)
    mime_type = db.Column(db.String(100), nullable=True)

    detected_language = db.Column(db.String(32), nullable=True)
    english_transcript = db.Column(db.Text, nullable=True)
    transcript_provider_id = db.Column(db.String(100), nullable=True)
    transcript_latency_ms = db.Column(db.Integer, nullable=True)

    note_text = db.Column(db.Text, nullable=True)
    note_source = db.Column(db.Enum(NoteSource, native_enum=False, length=32), nullable=True)
    warning = db.Column(db.Text, nullable=True)

    final_text = db.Column(db.Text, nullable=True)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_final(self):
        return self.final_text is not None

    def to_dict(self):
        """User-facing view; pipeline internals (audio_ref, attempts) stay hidden."""
        return {
            'callId': self.id,
            'status': self.status.value if self.status else None,
            'noteText': self.final_text if self.final_text is not None else self.note_text,
            'warning': self.warning,
            'metadata': {
                'callAt': _iso(self.call_at),
                'userId': self.user_id,
            },
            'isFinal': self.is_final,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


def _iso(value):
    return as_utc(value).isoformat() if value else None
