from datetime import timedelta

from ..models.job_attempt import JobAttempt
from ..repositories import JobAttemptRepository
from ..utils.clock import utcnow


class AttemptTracker:
    """Ledger of failed attempts per (call, stage).

    Read-then-append: the next number is the highest recorded one plus one.
    A unique constraint on (call_id, stage, attempt_no) rejects a duplicate
    number should two writers ever race.
    """

    def __init__(self, repository=None, clock=utcnow):
        self.repository = repository or JobAttemptRepository()
        self.clock = clock

    def record_attempt(self, call_id, stage, error_code, backoff_seconds=0) -> int:
        attempt_no = self.repository.latest_attempt_no(call_id, stage) + 1
        now = self.clock()
        self.repository.add(JobAttempt(
            call_id=str(call_id),
            stage=stage,
            attempt_no=attempt_no,
            error_code=(error_code or 'UNKNOWN')[:100],
            next_retry_at=now + timedelta(seconds=attempt_no * backoff_seconds) if backoff_seconds else None,
            created_at=now,
        ))
        return attempt_no
