"""Thin persistence seams over the Flask-SQLAlchemy session.

``save``/``add`` only flush; the service that owns the unit of work commits.
"""
from .extensions import db
from .models.call_record import CallRecord
from .models.job_attempt import JobAttempt
from .utils.clock import utcnow


class CallRepository:
    def get(self, call_id):
        if not call_id:
            return None
        return db.session.get(CallRecord, str(call_id))

    def get_owned(self, call_id, user_id):
        if not call_id or not user_id:
            return None
        return CallRecord.query.filter_by(id=str(call_id), user_id=str(user_id)).first()

    def save(self, call):
        call.updated_at = utcnow()
        db.session.add(call)
        db.session.flush()
        return call

    def list_for_owner(self, user_id, start=None, end=None):
        query = CallRecord.query.filter_by(user_id=str(user_id))
        if start is not None and end is not None:
            query = query.filter(CallRecord.call_at >= start, CallRecord.call_at <= end)
        return query.order_by(CallRecord.call_at.desc()).all()


class JobAttemptRepository:
    def latest_attempt_no(self, call_id, stage):
        row = (
            db.session.query(db.func.max(JobAttempt.attempt_no))
            .filter(JobAttempt.call_id == str(call_id), JobAttempt.stage == stage)
            .scalar()
        )
        return int(row or 0)

    def add(self, attempt):
        db.session.add(attempt)
        db.session.flush()
        return attempt
