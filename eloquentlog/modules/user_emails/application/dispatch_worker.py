"""验证邮件投递 Worker。

消费验证邮件任务并交给邮件传输层发送。投递语义为至少一次：
重复投递的任务只会按任务快照里的 token 再发一封邮件，不会修改记录。

回查记录时：
- 记录版本落后于任务快照：发放 token 的事务尚不可见，按失败重试
- 记录不存在或已完成验证：跳过并确认
- token 已被之后的 issue 覆盖：跳过并确认
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from loguru import logger

from eloquentlog.core.config import Settings
from eloquentlog.core.infrastructure.logging import BusinessEvents
from eloquentlog.modules.user_emails.application.email_templates import (
    build_identification_url,
    render_identification_email,
)
from eloquentlog.modules.user_emails.domain.entities import UserEmail
from eloquentlog.modules.user_emails.domain.exceptions import (
    JobNotFoundError,
    QueueUnavailableError,
    TransportError,
)
from eloquentlog.modules.user_emails.domain.jobs import Job
from eloquentlog.modules.user_emails.domain.ports import (
    EmailDispatcher,
    IdentificationJobQueue,
)

RecordLookup = Callable[[int], Awaitable[UserEmail | None]]

RECORD_NOT_YET_VISIBLE = "record_not_yet_visible"


class DispatchOutcome(StrEnum):
    SENT = "sent"
    RETRIED = "retried"
    DEAD_LETTERED = "dead_lettered"
    SKIPPED = "skipped"
    ABANDONED = "abandoned"  # claim lost to another consumer


@dataclass(frozen=True)
class DispatchWorkerConfig:
    project_name: str = "Eloquentlog"
    frontend_host: str = "http://localhost:3000"
    identification_path: str = "/user/identify"
    max_attempts: int = 3
    poll_timeout: float = 5.0
    error_backoff: float = 5.0

    @classmethod
    def from_settings(cls, config: Settings) -> "DispatchWorkerConfig":
        return cls(
            project_name=config.PROJECT_NAME,
            frontend_host=config.FRONTEND_HOST,
            identification_path=config.IDENTIFICATION_PATH,
            max_attempts=config.IDENTIFICATION_MAX_ATTEMPTS,
            poll_timeout=config.IDENTIFICATION_DEQUEUE_TIMEOUT_SEC,
        )


class DispatchWorker:
    """阻塞式消费循环。"""

    def __init__(
        self,
        job_queue: IdentificationJobQueue,
        email_dispatcher: EmailDispatcher,
        config: DispatchWorkerConfig | None = None,
        record_lookup: RecordLookup | None = None,
    ):
        self.job_queue = job_queue
        self.email_dispatcher = email_dispatcher
        self.config = config or DispatchWorkerConfig()
        self.record_lookup = record_lookup
        self.logger = logger

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """持续消费直到 stop_event 被设置。

        单个任务异常或 Broker 中断都不会结束循环。
        """
        stop_event = stop_event or asyncio.Event()
        self.logger.info("Identification dispatch worker started")

        while not stop_event.is_set():
            try:
                await self.run_once()
            except QueueUnavailableError as e:
                self.logger.warning(f"Job queue unavailable: {e}")
                await self._pause(stop_event)
            except Exception as e:
                self.logger.exception(f"Unexpected error in dispatch loop: {e}")
                await self._pause(stop_event)

        self.logger.info("Identification dispatch worker stopped")

    async def _pause(self, stop_event: asyncio.Event) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=self.config.error_backoff)

    async def run_once(self) -> DispatchOutcome | None:
        """最多认领并处理一个任务；等待超时返回 None。"""
        job = await self.job_queue.dequeue(self.config.poll_timeout)
        if job is None:
            return None
        return await self.process(job)

    async def process(self, job: Job) -> DispatchOutcome:
        payload = job.payload
        expires_at: datetime | None = None

        if self.record_lookup is not None:
            try:
                record = await self.record_lookup(payload.record_id)
            except Exception as e:
                # 快照足以发送
                self.logger.warning(
                    f"Record lookup failed for job {job.job_id}, sending anyway: {e}"
                )
            else:
                if self._record_behind(record, job):
                    return await self._handle_failure(job, RECORD_NOT_YET_VISIBLE)
                skip_reason = self._stale_reason(record, job)
                if skip_reason:
                    return await self._skip(job, skip_reason)
                expires_at = record.identification_token_expires_at

        url = build_identification_url(
            self.config.frontend_host,
            self.config.identification_path,
            payload.record_id,
            payload.token,
        )
        subject, body = render_identification_email(
            project_name=self.config.project_name,
            to_email=payload.email,
            identification_url=url,
            expires_at=expires_at,
        )

        try:
            await self.email_dispatcher.send(payload.email, subject, body)
        except TransportError as e:
            return await self._handle_failure(job, str(e))
        except Exception as e:
            self.logger.exception(f"Unexpected error sending job {job.job_id}: {e}")
            return await self._handle_failure(job, f"unexpected: {e}")

        try:
            await self.job_queue.ack(job.job_id)
        except JobNotFoundError:
            self.logger.warning(f"Job {job.job_id} was reclaimed before ack")

        BusinessEvents.identification_email_sent(
            record_id=payload.record_id,
            job_id=job.job_id,
            to_email=payload.email,
            success=True,
            attempt=job.attempt_count + 1,
        )
        return DispatchOutcome.SENT

    @staticmethod
    def _record_behind(record: UserEmail | None, job: Job) -> bool:
        expected = job.payload.record_version
        return (
            record is not None
            and expected is not None
            and record.lock_version < expected
        )

    @staticmethod
    def _stale_reason(record: UserEmail | None, job: Job) -> str | None:
        if record is None:
            return "record_not_found"
        if record.is_identified:
            return "already_identified"
        if record.identification_token != job.payload.token:
            return "token_superseded"
        return None

    async def _skip(self, job: Job, reason: str) -> DispatchOutcome:
        self.logger.info(f"Skipping stale job {job.job_id}: {reason}")
        try:
            await self.job_queue.ack(job.job_id)
        except JobNotFoundError:
            self.logger.warning(f"Job {job.job_id} was reclaimed before ack")
        BusinessEvents.identification_email_sent(
            record_id=job.payload.record_id,
            job_id=job.job_id,
            to_email=job.payload.email,
            success=False,
            error=reason,
        )
        return DispatchOutcome.SKIPPED

    async def _handle_failure(self, job: Job, error: str) -> DispatchOutcome:
        attempts = job.attempt_count + 1
        BusinessEvents.identification_email_sent(
            record_id=job.payload.record_id,
            job_id=job.job_id,
            to_email=job.payload.email,
            success=False,
            error=error,
            attempt=attempts,
        )

        try:
            if attempts >= self.config.max_attempts:
                await self.job_queue.dead_letter(job.job_id, error)
                BusinessEvents.identification_email_dead_lettered(
                    record_id=job.payload.record_id,
                    job_id=job.job_id,
                    attempts=attempts,
                    error=error,
                )
                return DispatchOutcome.DEAD_LETTERED

            await self.job_queue.nack(job.job_id, error)
            self.logger.warning(
                f"Identification email attempt {attempts}/{self.config.max_attempts} "
                f"failed for job {job.job_id}: {error}"
            )
            return DispatchOutcome.RETRIED
        except JobNotFoundError:
            self.logger.warning(f"Job {job.job_id} was reclaimed before nack")
            return DispatchOutcome.ABANDONED
