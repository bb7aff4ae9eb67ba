from .call_record import CallRecord, CallStatus, NoteSource
from .job_attempt import JobAttempt, JobStage
# base and mixins are imported by the above as needed
