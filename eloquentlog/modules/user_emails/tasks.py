"""User email Celery 任务。

包含：
- reclaim_stale_identification_jobs: 把认领超过可见性超时的验证邮件任务放回队列（Worker 崩溃）
"""

import asyncio

from celery import shared_task
from loguru import logger

from eloquentlog.core.config import settings
from eloquentlog.core.infrastructure.celery.queues import Queues
from eloquentlog.core.infrastructure.celery.retry import (
    DEFAULT_RETRYABLE_EXCEPTIONS,
    RetryableTaskError,
)
from eloquentlog.core.infrastructure.logging import BusinessEvents
from eloquentlog.modules.user_emails.domain.exceptions import QueueUnavailableError


@shared_task(
    name="eloquentlog.modules.user_emails.tasks.reclaim_stale_identification_jobs",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=DEFAULT_RETRYABLE_EXCEPTIONS,
    retry_backoff=True,
    queue=Queues.MAINTENANCE,
)
def reclaim_stale_identification_jobs(_self: object) -> int:
    """Called by Celery Beat; returns the number of requeued jobs."""
    return asyncio.run(_reclaim_stale_identification_jobs_async())


async def _reclaim_stale_identification_jobs_async() -> int:
    from eloquentlog.core.infrastructure.redis import get_async_redis_client
    from eloquentlog.modules.user_emails.infrastructure.dependencies import (
        build_job_queue,
    )

    async with get_async_redis_client() as redis_client:
        queue = build_job_queue(redis_client)
        try:
            count = await queue.requeue_expired_claims(
                settings.IDENTIFICATION_JOB_VISIBILITY_TIMEOUT_SEC
            )
        except QueueUnavailableError as e:
            logger.warning(f"Reclaim skipped, queue unavailable: {e}")
            raise RetryableTaskError(str(e)) from e

    if count:
        BusinessEvents.identification_jobs_reclaimed(queue=queue.name, count=count)
    return count
