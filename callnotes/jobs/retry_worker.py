import threading
from contextlib import nullcontext

from flask import current_app, has_app_context

from ..errors import QueueUnavailable
from ..extensions import db


class RetryDispatcher:
    """Fixed-delay poll loop that drains ready jobs from the retry queue.

    Each tick claims up to ``batch_size`` jobs and hands them to the
    processing service inside the Flask app context, so jobs can use the
    database session and ``current_app`` like a request would.
    """

    def __init__(self, app, processing=None, queue=None, batch_size=None, interval=None):
        self.app = app
        self._processing = processing
        self._queue = queue
        self.batch_size = batch_size or app.config.get('RETRY_WORKER_BATCH_SIZE', 5)
        self.interval = interval if interval is not None else app.config.get('RETRY_WORKER_INTERVAL_SECONDS', 2.0)
        self._stop = threading.Event()
        self._thread = None

    @property
    def processing(self):
        if self._processing is None:
            from ..services.processing import get_processing_service
            self._processing = get_processing_service()
        return self._processing

    @property
    def queue(self):
        return self._queue if self._queue is not None else self.processing.retry_queue

    def _app_context(self):
        if has_app_context() and current_app._get_current_object() is self.app:
            return nullcontext()
        return self.app.app_context()

    def run_once(self) -> int:
        dispatched = 0
        with self._app_context():
            for _ in range(self.batch_size):
                try:
                    job = self.queue.poll_ready_job()
                except QueueUnavailable:
                    self.app.logger.exception('Retry queue poll failed')
                    break
                if job is None:
                    break
                dispatched += 1
                try:
                    self.processing.handle_retry_job(job)
                except Exception:
                    # one bad job must not take the rest of the batch down
                    db.session.rollback()
                    self.app.logger.exception('Retry job failed: %s', job)
        return dispatched

    def run_forever(self):
        self.app.logger.info('Retry dispatcher running every %ss (batch %s)', self.interval, self.batch_size)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                self.app.logger.exception('Retry dispatcher tick failed')
            self._stop.wait(self.interval)
        self.app.logger.info('Retry dispatcher stopped')

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name='retry-dispatcher', daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
