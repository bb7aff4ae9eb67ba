import os
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from callnotes import create_app
from callnotes.errors import QueueUnavailable
from callnotes.extensions import db
from callnotes.services.calls import CallService
from callnotes.services.openai_wrap import TranscriptionResult
from callnotes.services.processing import ProcessingService
from callnotes.services.storage import LocalAudioStore


class FrozenClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class FakeTranscriber:
    def __init__(self, language='so', text='X'):
        self.result = TranscriptionResult(language, text, 'fake-stt', 12)
        self.failures = []
        self.calls = 0

    def transcribe(self, audio_bytes, mime_type):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class FakeTranslator:
    """Echoes the source unless told otherwise."""

    def __init__(self):
        self.output = None
        self.failures = []
        self.calls = []

    def translate(self, text, detected_language):
        self.calls.append((text, detected_language))
        if self.failures:
            raise self.failures.pop(0)
        return text if self.output is None else self.output


class FakeFormatter:
    def __init__(self):
        self.output = None
        self.failures = []
        self.calls = 0

    def format(self, english_text):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return english_text if self.output is None else self.output


class FakeQueue:
    def __init__(self, clock):
        self.clock = clock
        self.jobs = []
        self.unavailable = False

    def enqueue(self, job):
        if self.unavailable:
            raise QueueUnavailable('queue down')
        self.jobs.append(job)

    def poll_ready_job(self, now=None):
        now = now or self.clock()
        ready = sorted((j for j in self.jobs if j.available_at <= now), key=lambda j: j.available_at)
        if not ready:
            return None
        self.jobs.remove(ready[0])
        return ready[0]


@pytest.fixture
def app(tmp_path):
    app = create_app('config.TestConfig')
    app.config['LOCAL_STORAGE_DIR'] = str(tmp_path / 'audio')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def fakes(tmp_path, clock):
    return SimpleNamespace(
        transcriber=FakeTranscriber(),
        translator=FakeTranslator(),
        formatter=FakeFormatter(),
        queue=FakeQueue(clock),
        store=LocalAudioStore(str(tmp_path / 'audio')),
    )


@pytest.fixture
def make_service(app, fakes, clock):
    def _make(**overrides):
        options = dict(
            transcriber=fakes.transcriber,
            translator=fakes.translator,
            formatter=fakes.formatter,
            audio_store=fakes.store,
            retry_queue=fakes.queue,
            max_attempts=3,
            max_duration_seconds=120,
            async_on_upload=False,
            clock=clock,
        )
        options.update(overrides)
        return ProcessingService(**options)
    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def calls(service, clock):
    return CallService(service, clock=clock)


@pytest.fixture
def new_call(calls, clock):
    def _new(user_id='user-1'):
        return calls.create_call(user_id, clock() - timedelta(hours=1))
    return _new


@pytest.fixture
def stored_files(fakes):
    return lambda: sorted(os.listdir(fakes.store.root))
