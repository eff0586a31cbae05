"""
Redis result store.

Analysis records, card image blobs and prompt logs live under separate key
namespaces and share one fixed TTL (30 days by default). Every record has a
single writer (its orchestration run), so plain GET and SET with EX is enough.
"""
import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from redis.asyncio import Redis

from palmjob.models import AnalysisRecord, AnalysisStatus

from .config import RESULT_TTL_SECONDS

logger = logging.getLogger(__name__)

RESULT_PREFIX = "palmjob:result:"
IMAGE_PREFIX = "palmjob:image:"
LOG_PREFIX = "palmjob:log:"

_UPDATABLE_FIELDS = frozenset(AnalysisRecord.model_fields) - {"id", "created_at", "expires_at"}


class StatusTransitionError(ValueError):
    """Raised when an update would move a record's status backwards or out of a terminal state."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_redis(url: str) -> Redis:
    """Redis client for the store. Bytes in, bytes out: image blobs are stored raw."""
    return Redis.from_url(url, socket_connect_timeout=5, health_check_interval=30)


class ResultStore:
    def __init__(
        self,
        redis: Redis,
        ttl_seconds: int = RESULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._clock = clock

    async def create(self, analysis_id: str) -> AnalysisRecord:
        """Creates a pending record with a full TTL."""
        now = self._clock()
        record = AnalysisRecord(
            id=analysis_id,
            status=AnalysisStatus.pending,
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl),
        )
        await self._redis.set(RESULT_PREFIX + analysis_id, self._dump(record), ex=self._ttl)
        return record

    async def get(self, analysis_id: str) -> AnalysisRecord | None:
        """
        Returns the record, or None if it is absent or past expiresAt.
        Redis TTL normally removes expired keys already; a lagging key is deleted here.
        """
        key = RESULT_PREFIX + analysis_id
        data = await self._redis.get(key)
        if data is None:
            return None
        record = AnalysisRecord.model_validate_json(data)
        if record.is_expired(self._clock()):
            await self._redis.delete(key)
            logger.info("Deleted expired record %s on read", analysis_id)
            return None
        return record

    async def update(self, analysis_id: str, **fields: object) -> AnalysisRecord | None:
        """
        Merges fields onto the stored record and rewrites it.
        Keeps the remaining TTL; falls back to a full TTL if none is left.
        Returns None (and writes nothing) when the record does not exist.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update record fields: {sorted(unknown)}")
        key = RESULT_PREFIX + analysis_id
        data = await self._redis.get(key)
        if data is None:
            return None
        current = AnalysisRecord.model_validate_json(data)
        merged = current.model_dump()
        merged.update(fields)
        record = AnalysisRecord.model_validate(merged)
        _check_transition(current.status, record.status)

        ttl = await self._redis.ttl(key)
        await self._redis.set(key, self._dump(record), ex=ttl if ttl > 0 else self._ttl)
        return record

    async def save_image(self, analysis_id: str, kind: str, data: bytes, content_type: str) -> None:
        key = f"{IMAGE_PREFIX}{analysis_id}:{kind}"
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping={"content_type": content_type, "data": data})
            pipe.expire(key, self._ttl)
            await pipe.execute()

    async def get_image(self, analysis_id: str, kind: str) -> tuple[bytes, str] | None:
        raw = await self._redis.hgetall(f"{IMAGE_PREFIX}{analysis_id}:{kind}")
        if not raw or b"data" not in raw:
            return None
        content_type = raw.get(b"content_type", b"application/octet-stream").decode("ascii")
        return raw[b"data"], content_type

    async def append_log(self, analysis_id: str, kind: str, payload: dict) -> str:
        """Stores one diagnostic entry (prompt, response, metadata). Returns its key."""
        stamp = int(self._clock().timestamp() * 1000)
        key = f"{LOG_PREFIX}{analysis_id}:{kind}:{stamp}"
        await self._redis.set(key, json.dumps(payload, ensure_ascii=False, default=str), ex=self._ttl)
        return key

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()

    @staticmethod
    def _dump(record: AnalysisRecord) -> str:
        return record.model_dump_json(by_alias=True, exclude_none=True)


def _check_transition(current: AnalysisStatus, new: AnalysisStatus) -> None:
    if current.is_terminal:
        if new != current:
            raise StatusTransitionError(f"Record is already {current.value}; cannot move to {new.value}")
        return
    if new.rank < current.rank:
        raise StatusTransitionError(f"Cannot move status back from {current.value} to {new.value}")
