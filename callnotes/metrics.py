"""Process-wide Prometheus metrics for the call-note pipeline."""

from prometheus_client import Counter, Histogram

LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120)

transcription_seconds = Histogram(
    'callnotes_transcription_latency_seconds',
    'Time spent in the transcription capability',
    buckets=LATENCY_BUCKETS,
)
translation_seconds = Histogram(
    'callnotes_translation_latency_seconds',
    'Time spent in the translation capability',
    buckets=LATENCY_BUCKETS,
)
formatter_seconds = Histogram(
    'callnotes_formatter_latency_seconds',
    'Time spent in the formatter capability',
    buckets=LATENCY_BUCKETS,
)

formatter_fallback_total = Counter(
    'callnotes_formatter_fallback',
    'Notes that fell back to the raw translation',
    ['reason'],
)
retry_scheduled_total = Counter(
    'callnotes_retry_scheduled',
    'Retry jobs placed on the retry queue',
    ['stage'],
)
finalized_total = Counter(
    'callnotes_finalized',
    'Calls finalized by their owner',
)
