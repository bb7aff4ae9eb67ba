"""Error kinds raised across the call-notes pipeline.

``code`` mirrors the HTTP status an API layer would map the error to.
"""


class CallNotesError(RuntimeError):
    code = 500

    def __init__(self, message: str, code: int = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(CallNotesError):
    """Bad upload or empty finalize target; surfaced to the caller, never retried."""
    code = 400


class NotFoundError(CallNotesError):
    """Call id absent or owned by someone else. Both cases look identical."""
    code = 404


class StateConflictError(CallNotesError):
    code = 409


class UpstreamError(CallNotesError):
    """A transcription, translation or formatter call failed or returned nothing."""
    code = 502

    def __init__(self, message: str, error_code: str = "UPSTREAM_ERROR", cause: Exception = None):
        super().__init__(message)
        self.error_code = error_code
        self.cause = cause


class QueueUnavailable(CallNotesError):
    code = 503

    def __init__(self, message: str, cause: Exception = None):
        super().__init__(message)
        self.cause = cause


class StorageError(CallNotesError):
    def __init__(self, message: str, key: str = None, cause: Exception = None):
        super().__init__(message)
        self.key = key
        self.cause = cause
