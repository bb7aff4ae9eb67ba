"""Delay-ordered retry queue backed by a Redis sorted set.

Members are JSON payloads; the score is the epoch-millisecond time at which the
job becomes ready. Claiming runs as one Lua script so that the lookup of the
lowest ready entry and its removal cannot interleave with another poller.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from redis.exceptions import RedisError

from ..errors import QueueUnavailable
from ..models.job_attempt import JobStage
from ..utils.clock import utcnow, as_utc, to_epoch_ms

# Returns the claimed member, or nil when nothing is ready or another
# poller removed it first.
CLAIM_READY_JOB_LUA = """
local items = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, 1)
if #items == 0 then
  return false
end
if redis.call('ZREM', KEYS[1], items[1]) == 1 then
  return items[1]
end
return false
"""


@dataclass(frozen=True)
class RetryJob:
    call_id: str
    stage: JobStage
    attempt: int
    available_at: Optional[datetime] = None

    def to_payload(self) -> str:
        return json.dumps({
            'callId': str(self.call_id),
            'stage': JobStage(self.stage).value,
            'attempt': int(self.attempt),
            'availableAt': as_utc(self.available_at).isoformat() if self.available_at else None,
        }, sort_keys=True)

    @classmethod
    def from_payload(cls, payload):
        if isinstance(payload, bytes):
            payload = payload.decode('utf-8')
        data = json.loads(payload)
        available_at = data.get('availableAt')
        return cls(
            call_id=data['callId'],
            stage=JobStage(data['stage']),
            attempt=int(data['attempt']),
            available_at=datetime.fromisoformat(available_at) if available_at else None,
        )


class RetryQueue:
    def __init__(self, redis_conn, key='callnotes:retry-jobs', clock=utcnow):
        self.redis = redis_conn
        self.key = key
        self.clock = clock
        self._claim = redis_conn.register_script(CLAIM_READY_JOB_LUA) if redis_conn is not None else None

    def _require_connection(self):
        if self.redis is None:
            raise QueueUnavailable('Retry queue is not configured')

    def enqueue(self, job: RetryJob):
        self._require_connection()
        score = to_epoch_ms(job.available_at or self.clock())
        try:
            self.redis.zadd(self.key, {job.to_payload(): score})
        except RedisError as e:
            raise QueueUnavailable('Unable to enqueue retry job', cause=e)

    def poll_ready_job(self, now=None) -> Optional[RetryJob]:
        self._require_connection()
        now_ms = to_epoch_ms(now or self.clock())
        try:
            payload = self._claim(keys=[self.key], args=[now_ms])
        except RedisError as e:
            raise QueueUnavailable('Unable to poll retry queue', cause=e)
        if not payload:
            return None
        return RetryJob.from_payload(payload)

    def size(self) -> int:
        self._require_connection()
        try:
            return int(self.redis.zcard(self.key))
        except RedisError as e:
            raise QueueUnavailable('Unable to read retry queue size', cause=e)
