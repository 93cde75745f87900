"""Durable, TTL-bounded job status records kept in Redis.

Every record lives under ``media_job:<id>`` as a JSON document. Each write
re-arms the key expiry, so a record disappears ``ttl`` seconds after its last
update. ``sweep_expired`` additionally removes records whose age since
creation exceeds the TTL, for records kept alive by late writes.

There is no locking: concurrent writers interleave last-writer-wins, which is
fine because one worker owns a job at a time by convention.
"""
import json
import logging
import time

import redis

from .errors import ConflictError, InvalidTransitionError, NotFoundError
from .models import JobRecord, JobStatus, can_transition

logger = logging.getLogger(__name__)

KEY_PREFIX = "media_job:"
DEFAULT_TTL = 7200


def get_redis_client(url: str) -> redis.Redis:
    return redis.Redis.from_url(url, decode_responses=True)


class RedisStatusStore:
    def __init__(self, client, ttl: int = DEFAULT_TTL, clock=time.time):
        self.client = client
        self.ttl = ttl
        self.clock = clock

    def _key(self, job_id: str) -> str:
        return f"{KEY_PREFIX}{job_id}"

    def _read(self, key: str) -> JobRecord | None:
        raw = self.client.get(key)
        if raw is None:
            return None
        return JobRecord.from_dict(json.loads(raw))

    def create(self, job_id: str, kind: str, metadata: dict | None = None) -> JobRecord:
        now = self.clock()
        record = JobRecord(
            id=job_id,
            kind=kind,
            status=JobStatus.PENDING,
            progress=0,
            created_at=now,
            updated_at=now,
            metadata=dict(metadata or {}),
        )
        stored = self.client.set(self._key(job_id), json.dumps(record.to_dict()), ex=self.ttl, nx=True)
        if not stored:
            raise ConflictError(f"Job already exists: {job_id}")
        logger.info("Job %s created (kind=%s)", job_id, kind)
        return record

    def update(
        self,
        job_id: str,
        status: str,
        progress: int,
        result: dict | None = None,
        error: str | None = None,
    ) -> JobRecord:
        key = self._key(job_id)
        record = self._read(key)
        if record is None:
            raise NotFoundError(f"Job not found: {job_id}")
        if not can_transition(record.status, status):
            raise InvalidTransitionError(job_id, record.status, status)

        record.status = status
        record.progress = progress
        record.updated_at = self.clock()
        if result is not None:
            record.result = result
        if error is not None:
            record.error = error

        # XX: only overwrite if the key still exists (it may have been swept meanwhile).
        stored = self.client.set(key, json.dumps(record.to_dict()), ex=self.ttl, xx=True)
        if not stored:
            raise NotFoundError(f"Job not found: {job_id}")
        logger.debug("Job %s -> %s (%s%%)", job_id, status, progress)
        return record

    def get(self, job_id: str) -> JobRecord:
        record = self._read(self._key(job_id))
        if record is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return record

    def delete(self, job_id: str) -> bool:
        return bool(self.client.delete(self._key(job_id)))

    def list(self) -> list[JobRecord]:
        records = []
        for key in self.client.scan_iter(match=f"{KEY_PREFIX}*"):
            record = self._read(key)
            # Keys can expire between SCAN and GET.
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.created_at)
        return records

    def sweep_expired(self) -> int:
        now = self.clock()
        cleaned = 0
        for record in self.list():
            if now - record.created_at > self.ttl:
                if self.delete(record.id):
                    cleaned += 1
        logger.info("Swept %d expired job records", cleaned)
        return cleaned
