"""邮箱验证状态机。

状态：pending（无 token）、pending（有效 token）、pending（token 已过期）、done。
每次状态转换都是针对仓储乐观版本的 读-检查-写；版本冲突时重新读取并重新判定。

issue 先提交记录再入队：Worker 从另一个会话回查时必定能看到新 token。
入队失败时写回旧的 token/过期时间并再次提交。
"""

import hmac
from collections.abc import Callable
from datetime import datetime

from loguru import logger

from eloquentlog.core.domain.base_entity import utc_now
from eloquentlog.core.domain.exceptions import StaleRecordError
from eloquentlog.core.infrastructure.logging import BusinessEvents
from eloquentlog.modules.user_emails.application.token_generator import (
    IdentificationTokenGenerator,
)
from eloquentlog.modules.user_emails.domain.entities import UserEmail
from eloquentlog.modules.user_emails.domain.exceptions import (
    AlreadyIdentifiedError,
    IdentificationError,
    IdentificationNotPendingError,
    MissingEmailAddressError,
    NoPendingTokenError,
    QueueUnavailableError,
    TokenExpiredError,
    TokenMismatchError,
    UserEmailNotFoundError,
)
from eloquentlog.modules.user_emails.domain.jobs import IdentificationEmailPayload, Job
from eloquentlog.modules.user_emails.domain.ports import IdentificationJobQueue
from eloquentlog.modules.user_emails.domain.repository import UserEmailRepository

DEFAULT_CONFLICT_RETRIES = 3


class IdentificationStateMachine:
    """驱动 UserEmail 从 pending 到 done。"""

    def __init__(
        self,
        user_email_repository: UserEmailRepository,
        token_generator: IdentificationTokenGenerator,
        job_queue: IdentificationJobQueue,
        clock: Callable[[], datetime] = utc_now,
        conflict_retries: int = DEFAULT_CONFLICT_RETRIES,
    ):
        self.user_email_repository = user_email_repository
        self.token_generator = token_generator
        self.job_queue = job_queue
        self.clock = clock
        self.conflict_retries = conflict_retries
        self.logger = logger

    async def _load(self, record_id: int) -> UserEmail:
        user_email = await self.user_email_repository.get_by_id(record_id)
        if user_email is None:
            raise UserEmailNotFoundError(record_id)
        return user_email

    async def issue(self, record_id: int) -> UserEmail:
        """发放新 token 并投递验证邮件任务。

        旧 token 立即失效。记录提交成功后才入队；入队失败时回滚 token 并抛出
        QueueUnavailableError。
        """
        for _ in range(self.conflict_retries + 1):
            user_email = await self._load(record_id)
            if user_email.is_identified:
                self.logger.warning(
                    f"Refusing to issue token for identified user_email: id={record_id}"
                )
                raise IdentificationNotPendingError(record_id)
            if not user_email.email:
                raise MissingEmailAddressError(record_id)

            previous = (
                user_email.identification_token,
                user_email.identification_token_expires_at,
            )
            generated = self.token_generator.generate()
            user_email.grant_identification_token(
                generated.token, generated.expires_at, now=self.clock()
            )
            try:
                user_email = await self.user_email_repository.update(user_email)
                break
            except StaleRecordError:
                self.logger.info(f"Concurrent write on user_email {record_id}, retrying issue")
        else:
            raise StaleRecordError("UserEmail", record_id)

        # 提交失败时不入队，邮件里不会出现未落库的 token
        await self.user_email_repository.commit()

        job = Job(
            payload=IdentificationEmailPayload(
                record_id=record_id,
                email=user_email.email,
                token=generated.token,
                record_version=user_email.lock_version,
            )
        )
        try:
            job_id = await self.job_queue.enqueue(job)
        except QueueUnavailableError:
            self.logger.error(
                f"Identification email could not be enqueued, reverting token: id={record_id}"
            )
            await self._revert_issue(user_email, *previous)
            raise

        BusinessEvents.identification_token_issued(
            record_id=record_id,
            user_id=user_email.user_id,
            expires_at=generated.expires_at,
        )
        BusinessEvents.identification_email_enqueued(record_id=record_id, job_id=job_id)
        return user_email

    async def _revert_issue(
        self,
        user_email: UserEmail,
        token: str | None,
        expires_at: datetime | None,
    ) -> None:
        user_email.restore_identification_token(token, expires_at, now=self.clock())
        try:
            await self.user_email_repository.update(user_email)
        except StaleRecordError:
            # 另一个 issue / verify 已经覆盖了本次 token
            self.logger.warning(
                f"user_email {user_email.id} changed before token revert; left as is"
            )
            return
        await self.user_email_repository.commit()

    def _check_token(self, user_email: UserEmail, presented_token: str) -> None:
        # 判定顺序固定：错误 token 不会泄露真实 token 是否已过期
        if user_email.is_identified:
            raise AlreadyIdentifiedError()

        stored = user_email.identification_token
        if stored is None:
            raise NoPendingTokenError()

        if not hmac.compare_digest(
            presented_token.encode("utf-8"), stored.encode("utf-8")
        ):
            raise TokenMismatchError()

        if user_email.is_token_expired(self.clock()):
            raise TokenExpiredError()

    async def verify(self, record_id: int, presented_token: str) -> UserEmail:
        """校验并消费 token，记录进入 done。"""
        for _ in range(self.conflict_retries + 1):
            user_email = await self._load(record_id)
            try:
                self._check_token(user_email, presented_token)
            except IdentificationError as e:
                BusinessEvents.identification_verify_failed(
                    record_id=record_id, reason=e.reason
                )
                raise

            user_email.mark_as_identified(now=self.clock())
            try:
                user_email = await self.user_email_repository.update(user_email)
            except StaleRecordError:
                self.logger.info(
                    f"Concurrent write on user_email {record_id}, re-checking token"
                )
                continue

            await self.user_email_repository.commit()
            BusinessEvents.identification_verified(
                record_id=record_id, user_id=user_email.user_id
            )
            return user_email

        raise StaleRecordError("UserEmail", record_id)
