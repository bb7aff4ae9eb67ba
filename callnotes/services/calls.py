from .. import metrics
from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models.call_record import CallRecord, CallStatus, PRE_DRAFT_STATUSES
from ..repositories import CallRepository
from ..utils.clock import utcnow, as_utc
from flask import current_app


class CallService:
    """Owner-scoped operations on call records.

    A call owned by someone else is reported exactly like a missing one.
    """

    def __init__(self, processing, calls=None, clock=utcnow):
        self.processing = processing
        self.calls = calls or CallRepository()
        self.clock = clock

    def _owned(self, call_id, user_id):
        call = self.calls.get_owned(call_id, user_id)
        if call is None:
            raise NotFoundError('Call record not found')
        return call

    def create_call(self, user_id, call_at):
        if not user_id:
            raise ValidationError('User id is required')
        if call_at is None:
            raise ValidationError('Call time is required')
        call = CallRecord(user_id=str(user_id), call_at=as_utc(call_at), status=CallStatus.CREATED)
        self.calls.save(call)
        db.session.commit()
        return call

    def get_call(self, call_id, user_id):
        return self._owned(call_id, user_id)

    def list_calls(self, user_id, start=None, end=None):
        if start is not None and end is not None:
            return self.calls.list_for_owner(user_id, as_utc(start), as_utc(end))
        return self.calls.list_for_owner(user_id)

    def upload_audio(self, user_id, call_id, audio_bytes, mime_type, duration_seconds, filename=None):
        call = self._owned(call_id, user_id)
        return self.processing.submit_audio(call, audio_bytes, mime_type, duration_seconds, filename=filename)

    def update_draft(self, call_id, user_id, text):
        call = self._owned(call_id, user_id)
        if call.status == CallStatus.FINALIZED:
            raise StateConflictError('Finalized note cannot be edited')
        if call.status in PRE_DRAFT_STATUSES:
            raise StateConflictError('Draft is not ready yet')

        call.note_text = (text or '').strip()
        self.calls.save(call)
        db.session.commit()
        return call

    def finalize_call(self, call_id, user_id):
        call = self._owned(call_id, user_id)
        if call.status == CallStatus.FINALIZED:
            return call
        if not call.note_text or not call.note_text.strip():
            raise ValidationError('Cannot finalize empty draft')

        call.final_text = call.note_text
        call.finalized_at = self.clock()
        call.status = CallStatus.FINALIZED
        self.calls.save(call)
        db.session.commit()
        metrics.finalized_total.inc()
        current_app.logger.info('Finalized call %s', call.id)
        return call
