"""Redis 实现的验证邮件任务队列。

可靠队列模式，每个状态转换都是一次原子操作：
- enqueue: HSET 任务体 + LPUSH 任务 ID（MULTI/EXEC）
- dequeue: LMOVE pending -> processing，同时写入认领时间与认领凭证；
  队列为空时按 poll_interval 轮询直到超时
- ack/nack/dead_letter: 只有持有当前认领凭证的 Worker 能操作，否则 JobNotFoundError
- requeue_expired_claims: 认领超时（Worker 崩溃）的任务放回 pending，凭证作废

认领与打时间戳在同一脚本内，任务不会停留在 processing 而没有认领记录。
"""

import asyncio
import contextlib
import time
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError
from redis.exceptions import RedisError

from eloquentlog.core.domain.base_entity import utc_now
from eloquentlog.core.infrastructure.redis import (
    RedisClient,
    RedisKeys,
    RedisUnavailableError,
)
from eloquentlog.modules.user_emails.domain.exceptions import (
    JobNotFoundError,
    QueueUnavailableError,
)
from eloquentlog.modules.user_emails.domain.jobs import Job

_BROKER_ERRORS = (RedisError, RedisUnavailableError, OSError)

# KEYS: pending, processing, claims, owners  ARGV: now, owner
CLAIM_SCRIPT = """
local job_id = redis.call('LMOVE', KEYS[1], KEYS[2], 'RIGHT', 'LEFT')
if not job_id then
    return false
end
redis.call('ZADD', KEYS[3], ARGV[1], job_id)
redis.call('HSET', KEYS[4], job_id, ARGV[2])
return job_id
"""

# KEYS: processing, claims, owners, jobs  ARGV: job_id, owner
ACK_SCRIPT = """
if redis.call('HGET', KEYS[3], ARGV[1]) ~= ARGV[2] then
    return 0
end
redis.call('LREM', KEYS[1], 0, ARGV[1])
redis.call('ZREM', KEYS[2], ARGV[1])
redis.call('HDEL', KEYS[3], ARGV[1])
redis.call('HDEL', KEYS[4], ARGV[1])
return 1
"""

# KEYS: processing, claims, owners, jobs, destination  ARGV: job_id, owner, body
# body 为空串时保留原任务体
RELEASE_SCRIPT = """
if redis.call('HGET', KEYS[3], ARGV[1]) ~= ARGV[2] then
    return 0
end
if ARGV[3] ~= '' then
    redis.call('HSET', KEYS[4], ARGV[1], ARGV[3])
end
redis.call('LREM', KEYS[1], 0, ARGV[1])
redis.call('ZREM', KEYS[2], ARGV[1])
redis.call('HDEL', KEYS[3], ARGV[1])
redis.call('LPUSH', KEYS[5], ARGV[1])
return 1
"""

# KEYS: processing, claims, owners, pending  ARGV: cutoff
REQUEUE_EXPIRED_SCRIPT = """
local expired = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', ARGV[1])
local requeued = 0
for _, job_id in ipairs(expired) do
    redis.call('ZREM', KEYS[2], job_id)
    redis.call('HDEL', KEYS[3], job_id)
    if redis.call('LREM', KEYS[1], 0, job_id) > 0 then
        redis.call('RPUSH', KEYS[4], job_id)
        requeued = requeued + 1
    end
end
return requeued
"""


class RedisIdentificationJobQueue:
    """Redis 可靠队列。

    认领凭证保存在本实例内，每个 Worker 进程使用自己的队列实例。
    """

    def __init__(
        self,
        redis_client: RedisClient,
        name: str = "identification_email",
        poll_interval: float = 0.2,
    ):
        self.redis = redis_client
        self.name = name
        self.poll_interval = poll_interval
        self.pending_key = RedisKeys.queue_pending(name)
        self.processing_key = RedisKeys.queue_processing(name)
        self.jobs_key = RedisKeys.queue_jobs(name)
        self.claims_key = RedisKeys.queue_claims(name)
        self.owners_key = RedisKeys.queue_claim_owners(name)
        self.dead_key = RedisKeys.queue_dead(name)

        self._claim_script = redis_client.register_script(CLAIM_SCRIPT)
        self._ack_script = redis_client.register_script(ACK_SCRIPT)
        self._release_script = redis_client.register_script(RELEASE_SCRIPT)
        self._requeue_script = redis_client.register_script(REQUEUE_EXPIRED_SCRIPT)
        self._owners: dict[str, str] = {}

    async def enqueue(self, job: Job) -> str:
        try:
            pipe = self.redis.pipeline()
            pipe.hset(self.jobs_key, job.job_id, job.model_dump_json())
            pipe.lpush(self.pending_key, job.job_id)
            await pipe.execute()
        except _BROKER_ERRORS as e:
            raise QueueUnavailableError(f"Failed to enqueue job {job.job_id}: {e}") from e

        logger.debug(f"Enqueued {job} on {self.pending_key}")
        return job.job_id

    async def dequeue(self, timeout: float) -> Job | None:
        deadline = time.monotonic() + timeout
        while True:
            owner = uuid4().hex
            try:
                job_id = await self._claim_script(
                    keys=[
                        self.pending_key,
                        self.processing_key,
                        self.claims_key,
                        self.owners_key,
                    ],
                    args=[time.time(), owner],
                )
            except _BROKER_ERRORS as e:
                raise QueueUnavailableError(f"Failed to dequeue: {e}") from e
            if job_id is not None:
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(self.poll_interval, remaining))

        self._owners[job_id] = owner
        try:
            raw = await self.redis.hget(self.jobs_key, job_id)
            if raw is None:
                # 任务体丢失，只能丢弃这个 ID
                logger.error(f"Job body missing for {job_id}, discarding")
                with contextlib.suppress(JobNotFoundError):
                    await self._finish(job_id)
                return None
            try:
                return Job.model_validate_json(raw)
            except ValidationError as e:
                logger.error(f"Undecodable job {job_id}, moving to dead letters: {e}")
                with contextlib.suppress(JobNotFoundError):
                    await self._release(job_id, self.dead_key, body="")
                return None
        except _BROKER_ERRORS as e:
            # 认领已记录，超过可见性超时后会被重新投递
            raise QueueUnavailableError(f"Failed to read claimed job {job_id}: {e}") from e

    async def ack(self, job_id: str) -> None:
        try:
            await self._finish(job_id)
        except _BROKER_ERRORS as e:
            raise QueueUnavailableError(f"Failed to ack job {job_id}: {e}") from e

    async def nack(self, job_id: str, error: str | None = None) -> None:
        try:
            job = await self._load_claimed(job_id)
            updated = job.model_copy(
                update={
                    "attempt_count": job.attempt_count + 1,
                    "last_error": error,
                }
            )
            await self._release(job_id, self.pending_key, updated.model_dump_json())
        except _BROKER_ERRORS as e:
            raise QueueUnavailableError(f"Failed to nack job {job_id}: {e}") from e

    async def dead_letter(self, job_id: str, error: str) -> None:
        try:
            job = await self._load_claimed(job_id)
            buried = job.model_copy(
                update={
                    "attempt_count": job.attempt_count + 1,
                    "last_error": error,
                    "dead_lettered_at": utc_now(),
                }
            )
            await self._release(job_id, self.dead_key, buried.model_dump_json())
        except _BROKER_ERRORS as e:
            raise QueueUnavailableError(f"Failed to dead-letter job {job_id}: {e}") from e
        logger.warning(f"Job {job_id} moved to {self.dead_key}: {error}")

    async def requeue_expired_claims(self, visibility_timeout: float) -> int:
        """把认领超过 visibility_timeout 秒仍未确认的任务放回 pending。"""
        cutoff = time.time() - visibility_timeout
        try:
            requeued = int(
                await self._requeue_script(
                    keys=[
                        self.processing_key,
                        self.claims_key,
                        self.owners_key,
                        self.pending_key,
                    ],
                    args=[cutoff],
                )
            )
        except _BROKER_ERRORS as e:
            raise QueueUnavailableError(f"Failed to reclaim jobs: {e}") from e

        if requeued:
            logger.warning(f"Requeued {requeued} expired claims on {self.pending_key}")
        return requeued

    async def list_dead_letters(self, limit: int = 100) -> list[Job]:
        """读取死信任务，供运维排查。"""
        try:
            job_ids = await self.redis.lrange(self.dead_key, 0, limit - 1)
            if not job_ids:
                return []
            raws = await self.redis.hmget(self.jobs_key, job_ids)
        except _BROKER_ERRORS as e:
            raise QueueUnavailableError(f"Failed to read dead letters: {e}") from e
        jobs: list[Job] = []
        for job_id, raw in zip(job_ids, raws, strict=True):
            if raw is None:
                continue
            try:
                jobs.append(Job.model_validate_json(raw))
            except ValidationError:
                logger.warning(f"Dead letter {job_id} is undecodable, skipped")
        return jobs

    def _owner_of(self, job_id: str) -> str:
        owner = self._owners.get(job_id)
        if owner is None:
            raise JobNotFoundError(job_id)
        return owner

    async def _load_claimed(self, job_id: str) -> Job:
        self._owner_of(job_id)
        raw = await self.redis.hget(self.jobs_key, job_id)
        if raw is None:
            self._owners.pop(job_id, None)
            raise JobNotFoundError(job_id)
        return Job.model_validate_json(raw)

    async def _finish(self, job_id: str) -> None:
        owner = self._owner_of(job_id)
        done = await self._ack_script(
            keys=[self.processing_key, self.claims_key, self.owners_key, self.jobs_key],
            args=[job_id, owner],
        )
        self._owners.pop(job_id, None)
        if not done:
            raise JobNotFoundError(job_id)

    async def _release(self, job_id: str, destination: str, body: str) -> None:
        owner = self._owner_of(job_id)
        done = await self._release_script(
            keys=[
                self.processing_key,
                self.claims_key,
                self.owners_key,
                self.jobs_key,
                destination,
            ],
            args=[job_id, owner, body],
        )
        self._owners.pop(job_id, None)
        if not done:
            raise JobNotFoundError(job_id)
