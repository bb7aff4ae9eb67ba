"""Pipeline orchestration: transcription -> translation -> formatting.

Every entry point below runs as one unit of work: state changes are flushed
as the run progresses and committed together at the end, or rolled back if
something escapes. Capability failures never escape; they become status and
warning changes on the call, plus a bounded retry on the retry queue.
Audio blobs released by a run are deleted only after its commit.
"""

from contextlib import contextmanager
from datetime import timedelta

from flask import current_app

from .. import metrics
from ..errors import NotFoundError, QueueUnavailable, StateConflictError, UpstreamError, ValidationError
from ..extensions import db, redis_store
from ..models.call_record import CallStatus, NoteSource, PRE_DRAFT_STATUSES
from ..models.job_attempt import JobStage
from ..repositories import CallRepository
from ..utils.clock import utcnow
from .attempts import AttemptTracker
from .faithfulness import looks_unfaithful
from .ollama_wrap import OllamaFormatter
from .openai_wrap import OpenAITranscriber, OpenAITranslator
from .retry_queue import RetryJob, RetryQueue
from .storage import get_audio_store

ALLOWED_MIME_TYPES = frozenset({
    'audio/mpeg',
    'audio/mp4',
    'audio/wav',
    'audio/x-wav',
    'audio/x-m4a',
    'audio/aac',
    'audio/ogg',
})

# seconds of delay per attempt number
TRANSCRIPTION_BACKOFF_SECONDS = 15
FORMATTER_BACKOFF_SECONDS = 10
FORMATTER_RETRY_BACKOFF_SECONDS = 20

WARN_TRANSCRIPTION_RETRY = "Transcription failed. Automatic retry scheduled."
WARN_TRANSCRIPTION_FAILED = "Transcription failed. Please re-upload audio."
WARN_FORMATTER_UNFAITHFUL = "Formatter output looked inaccurate. Raw translation returned."
WARN_FORMATTER_RETRY = "Formatter unavailable. Raw translation returned; retry scheduled."
WARN_FORMATTER_FALLBACK = "Formatter unavailable. Raw translation returned."
WARN_FORMATTER_RETRY_UNFAITHFUL = "Formatter output looked inaccurate. Using raw translation."
WARN_FORMATTER_RETRY_FAILED ="Formatter retry failed. Using raw translation."


def _error_code(exc):
    return getattr(exc, 'error_code', None) or type(exc).__name__


class ProcessingService:
    def __init__(self, transcriber, translator, formatter, audio_store, retry_queue,
                 attempt_tracker=None, calls=None, max_attempts=3,
                 max_duration_seconds=120, async_on_upload=False, clock=utcnow):
        self.transcriber = transcriber
        self.translator = translator
        self.formatter = formatter
        self.audio_store = audio_store
        self.retry_queue = retry_queue
        self.attempts = attempt_tracker or AttemptTracker(clock=clock)
        self.calls = calls or CallRepository()
        self.max_attempts = max_attempts
        self.max_duration_seconds = max_duration_seconds
        self.async_on_upload = async_on_upload
        self.clock = clock

    @contextmanager
    def _unit_of_work(self):
        released_keys = []
        try:
            yield released_keys
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        for key in released_keys:
            self.audio_store.delete(key)

    # -- upload -----------------------------------------------------------

    def validate_upload(self, audio_bytes, mime_type, duration_seconds):
        if not audio_bytes:
            raise ValidationError('Audio file is required')
        content_type = (mime_type or '').split(';')[0].strip().lower()
        if not content_type or (content_type not in ALLOWED_MIME_TYPES and not content_type.startswith('audio/')):
            raise ValidationError(f'Unsupported audio MIME type: {mime_type}')
        try:
            duration = float(duration_seconds)
        except (TypeError, ValueError):
            raise ValidationError('Audio duration must be a number of seconds')
        if not 1 <= duration <= self.max_duration_seconds:
            raise ValidationError(f'Audio duration must be between 1 and {self.max_duration_seconds} seconds')

    def submit_audio(self, call, audio_bytes, mime_type, duration_seconds, filename=None):
        if call.status == CallStatus.FINALIZED:
            raise StateConflictError('Cannot upload audio for finalized note')
        self.validate_upload(audio_bytes, mime_type, duration_seconds)

        # a previous run may have left audio behind (transcription retry pending)
        previous_ref = call.audio_ref
        key = self.audio_store.store(audio_bytes, filename=filename, mime_type=mime_type)
        try:
            with self._unit_of_work():
                call.audio_ref = key
                call.mime_type = (mime_type or '').split(';')[0].strip().lower()
                call.status = CallStatus.UPLOADED
                call.warning = None
                self.calls.save(call)
        except Exception:
            self.audio_store.delete(key)
            raise
        if previous_ref and previous_ref != key:
            self.audio_store.delete(previous_ref)
        current_app.logger.info('Stored audio for call %s (%s bytes, %ss)', call.id, len(audio_bytes), duration_seconds)

        if not self.async_on_upload:
            return self.run_pipeline(call.id, allow_retry=True)

        job = RetryJob(call.id, JobStage.TRANSCRIPTION, 1, self.clock())
        try:
            self.retry_queue.enqueue(job)
        except QueueUnavailable:
            current_app.logger.exception('Enqueue failed for call %s, processing synchronously', call.id)
            return self.run_pipeline(call.id, allow_retry=True)
        return call

    # -- pipeline ---------------------------------------------------------

    def run_pipeline(self, call_id, allow_retry=True):
        with self._unit_of_work() as released:
            return self._run_pipeline(call_id, allow_retry, released)

    def _run_pipeline(self, call_id, allow_retry, released):
        call = self.calls.get(call_id)
        if call is None:
            raise NotFoundError('Call record not found')
        if not call.audio_ref:
            raise ValidationError('No audio uploaded for this call')
        if not self.audio_store.exists(call.audio_ref):
            raise ValidationError('Uploaded audio file is missing')

        call.status = CallStatus.TRANSCRIBING
        self.calls.save(call)
        audio_bytes = self.audio_store.read_bytes(call.audio_ref)

        try:
            with metrics.transcription_seconds.time():
                transcription = self.transcriber.transcribe(audio_bytes, call.mime_type or 'audio/*')
            with metrics.translation_seconds.time():
                english = self.translator.translate(transcription.text, transcription.detected_language)
            if not english or not english.strip():
                raise UpstreamError('Translation stage returned empty text', error_code='TRANSLATION_EMPTY')
        except Exception as e:
            return self._handle_transcription_failure(call, e, allow_retry, released)

        call.detected_language = transcription.detected_language
        call.english_transcript = english
        call.transcript_provider_id = transcription.provider_id
        call.transcript_latency_ms = transcription.latency_ms
        call.status = CallStatus.FORMATTING
        self.calls.save(call)
        current_app.logger.debug('Call %s transcribed (%s, %sms)', call.id, call.detected_language, call.transcript_latency_ms)

        try:
            with metrics.formatter_seconds.time():
                formatted = self.formatter.format(english)
        except Exception as e:
            return self._handle_formatter_failure(call, e, released)

        self._apply_formatted(call, english, formatted, WARN_FORMATTER_UNFAITHFUL)
        self._release_audio(call, released)
        return self.calls.save(call)

    def _apply_formatted(self, call, english, formatted, unfaithful_warning):
        if looks_unfaithful(english, formatted):
            current_app.logger.warning('Formatter output for call %s looked unfaithful, keeping raw translation', call.id)
            metrics.formatter_fallback_total.labels(reason='unfaithful').inc()
            call.note_text = english
            call.note_source = NoteSource.RAW_TRANSLATION
            call.status = CallStatus.READY_WITH_WARNING
            call.warning = unfaithful_warning
        else:
            call.note_text = formatted
            call.note_source = NoteSource.FORMATTER
            call.status = CallStatus.READY
            call.warning = None

    def _release_audio(self, call, released):
        if call.audio_ref:
            released.append(call.audio_ref)
            call.audio_ref = None

    def _schedule_retry(self, call_id, stage, attempt, delay_seconds) -> bool:
        job = RetryJob(call_id, stage, attempt, self.clock() + timedelta(seconds=delay_seconds))
        try:
            self.retry_queue.enqueue(job)
        except QueueUnavailable:
            current_app.logger.exception('Unable to enqueue retry job for call %s stage %s', call_id, stage.value)
            return False
        metrics.retry_scheduled_total.labels(stage=stage.value).inc()
        current_app.logger.info('Scheduled %s retry %s for call %s in %ss', stage.value, attempt, call_id, delay_seconds)
        return True

    # -- failure handling -------------------------------------------------

    def _handle_transcription_failure(self, call, exc, allow_retry, released):
        attempt_no = self.attempts.record_attempt(
            call.id, JobStage.TRANSCRIPTION, _error_code(exc), TRANSCRIPTION_BACKOFF_SECONDS)
        current_app.logger.warning('Transcription attempt %s failed for call %s: %s', attempt_no, call.id, exc)

        scheduled = False
        if allow_retry and attempt_no < self.max_attempts:
            scheduled = self._schedule_retry(
                call.id, JobStage.TRANSCRIPTION, attempt_no + 1, attempt_no * TRANSCRIPTION_BACKOFF_SECONDS)

        call.status = CallStatus.FAILED
        call.warning = WARN_TRANSCRIPTION_RETRY if scheduled else WARN_TRANSCRIPTION_FAILED
        if not scheduled:
            self._release_audio(call, released)
        return self.calls.save(call)

    def _handle_formatter_failure(self, call, exc, released):
        attempt_no = self.attempts.record_attempt(
            call.id, JobStage.FORMATTER, _error_code(exc), FORMATTER_BACKOFF_SECONDS)
        current_app.logger.warning('Formatter attempt %s failed for call %s, using raw translation: %s', attempt_no, call.id, exc)

        scheduled = False
        if attempt_no < self.max_attempts:
            scheduled = self._schedule_retry(
                call.id, JobStage.FORMATTER, attempt_no + 1, attempt_no * FORMATTER_BACKOFF_SECONDS)

        metrics.formatter_fallback_total.labels(reason='error').inc()
        call.note_text = call.english_transcript
        call.note_source = NoteSource.RAW_TRANSLATION
        call.status = CallStatus.READY_WITH_WARNING
        call.warning = WARN_FORMATTER_RETRY if scheduled else WARN_FORMATTER_FALLBACK
        # the transcript is captured; the formatter retry does not need the audio
        self._release_audio(call, released)
        return self.calls.save(call)

    # -- retries ----------------------------------------------------------

    def handle_retry_job(self, job):
        with self._unit_of_work() as released:
            call = self.calls.get(job.call_id)
            if call is None or call.status == CallStatus.FINALIZED:
                return None

            if job.stage == JobStage.TRANSCRIPTION:
                if not call.audio_ref:
                    return call
                if not self.audio_store.exists(call.audio_ref):
                    current_app.logger.warning('Audio for call %s is gone, transcription retry abandoned', call.id)
                    call.audio_ref = None
                    call.status = CallStatus.FAILED
                    call.warning = WARN_TRANSCRIPTION_FAILED
                    return self.calls.save(call)
                return self._run_pipeline(call.id, True, released)

            if job.stage == JobStage.FORMATTER:
                return self._retry_formatter(call)
            return call

    def _retry_formatter(self, call):
        english = call.english_transcript
        if not english or not english.strip() or call.final_text is not None:
            return call
        # a newer upload is in flight or failed; the stored transcript is stale
        if call.status in PRE_DRAFT_STATUSES or call.status == CallStatus.FAILED:
            return call

        call.status = CallStatus.FORMATTING
        self.calls.save(call)
        try:
            with metrics.formatter_seconds.time():
                formatted = self.formatter.format(english)
        except Exception as e:
            metrics.formatter_fallback_total.labels(reason='error').inc()
            attempt_no = self.attempts.record_attempt(
                call.id, JobStage.FORMATTER, _error_code(e), FORMATTER_RETRY_BACKOFF_SECONDS)
            current_app.logger.warning('Formatter retry attempt %s failed for call %s: %s', attempt_no, call.id, e)
            if attempt_no < self.max_attempts:
                self._schedule_retry(
                    call.id, JobStage.FORMATTER, attempt_no + 1, attempt_no * FORMATTER_RETRY_BACKOFF_SECONDS)
            call.status = CallStatus.READY_WITH_WARNING
            call.warning = WARN_FORMATTER_RETRY_FAILED
            return self.calls.save(call)

        self._apply_formatted(call, english, formatted, WARN_FORMATTER_RETRY_UNFAITHFUL)
        return self.calls.save(call)


def build_processing_service(app=None):
    app = app or current_app
    config = app.config
    return ProcessingService(
        transcriber=OpenAITranscriber.from_config(config),
        translator=OpenAITranslator.from_config(config),
        formatter=OllamaFormatter.from_config(config),
        audio_store=get_audio_store(config),
        retry_queue=RetryQueue(redis_store.redis, key=config.get('RETRY_QUEUE_KEY')),
        max_attempts=config.get('RETRY_MAX_ATTEMPTS', 3),
        max_duration_seconds=config.get('AUDIO_MAX_DURATION_SECONDS', 120),
        async_on_upload=config.get('RETRY_ASYNC_ON_UPLOAD', False),
    )


def get_processing_service():
    app = current_app._get_current_object()
    service = app.extensions.get('processing_service')
    if service is None:
        service = build_processing_service(app)
        app.extensions['processing_service'] = service
    return service
