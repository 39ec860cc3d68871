"""User email module wiring for worker processes and scripts."""

from sqlalchemy.ext.asyncio import AsyncSession

from eloquentlog.core.config import Settings, settings
from eloquentlog.core.domain.events import EventBus, get_event_bus
from eloquentlog.core.infrastructure.redis import RedisClient
from eloquentlog.modules.user_emails.application.dispatch_worker import (
    DispatchWorker,
    DispatchWorkerConfig,
)
from eloquentlog.modules.user_emails.application.state_machine import (
    IdentificationStateMachine,
)
from eloquentlog.modules.user_emails.application.token_generator import (
    IdentificationTokenGenerator,
)
from eloquentlog.modules.user_emails.domain.entities import UserEmail
from eloquentlog.modules.user_emails.domain.ports import EmailDispatcher
from eloquentlog.modules.user_emails.infrastructure.email_dispatcher import (
    SMTPEmailDispatcher,
)
from eloquentlog.modules.user_emails.infrastructure.job_queue import (
    RedisIdentificationJobQueue,
)
from eloquentlog.modules.user_emails.infrastructure.mappers import UserEmailMapper
from eloquentlog.modules.user_emails.infrastructure.repositories import (
    PostgreSQLUserEmailRepository,
)


def build_user_email_repository(
    session: AsyncSession,
    event_bus: EventBus | None = None,
) -> PostgreSQLUserEmailRepository:
    return PostgreSQLUserEmailRepository(
        session, UserEmailMapper(), event_bus or get_event_bus()
    )


def build_job_queue(
    redis_client: RedisClient,
    config: Settings = settings,
) -> RedisIdentificationJobQueue:
    return RedisIdentificationJobQueue(redis_client, name=config.IDENTIFICATION_QUEUE_NAME)


def build_identification_state_machine(
    session: AsyncSession,
    redis_client: RedisClient,
    config: Settings = settings,
) -> IdentificationStateMachine:
    return IdentificationStateMachine(
        user_email_repository=build_user_email_repository(session),
        token_generator=IdentificationTokenGenerator.from_settings(config),
        job_queue=build_job_queue(redis_client, config),
    )


async def lookup_user_email(record_id: int) -> UserEmail | None:
    """Read a record in its own short-lived session."""
    from eloquentlog.core.infrastructure.database.session import get_async_session

    async with get_async_session() as session:
        return await build_user_email_repository(session).get_by_id(record_id)


def build_dispatch_worker(
    redis_client: RedisClient,
    email_dispatcher: EmailDispatcher | None = None,
    config: Settings = settings,
    check_records: bool = True,
) -> DispatchWorker:
    return DispatchWorker(
        job_queue=build_job_queue(redis_client, config),
        email_dispatcher=email_dispatcher or SMTPEmailDispatcher(),
        config=DispatchWorkerConfig.from_settings(config),
        record_lookup=lookup_user_email if check_records else None,
    )
