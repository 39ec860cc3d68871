"""User email repository implementations."""

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from eloquentlog.core.domain.exceptions import StaleRecordError
from eloquentlog.core.domain.events import EventBus
from eloquentlog.core.infrastructure.database.event_aware_repository import (
    EventAwareRepository,
)
from eloquentlog.modules.user_emails.domain.entities import UserEmail
from eloquentlog.modules.user_emails.domain.exceptions import EmailAlreadyClaimedError
from eloquentlog.modules.user_emails.domain.repository import UserEmailRepository
from eloquentlog.modules.user_emails.infrastructure.mappers import UserEmailMapper
from eloquentlog.modules.user_emails.infrastructure.models import UserEmailModel


class PostgreSQLUserEmailRepository(EventAwareRepository[UserEmail], UserEmailRepository):
    """PostgreSQL user email repository implementation.

    Writes run inside a SAVEPOINT so a rejected row leaves the caller's
    transaction usable.
    """

    def __init__(
        self,
        session: AsyncSession,
        mapper: UserEmailMapper,
        event_publisher: EventBus,
    ):
        super().__init__(event_publisher)
        self.session = session
        self.mapper = mapper
        self.logger = logger

    async def get_by_id(self, user_email_id: int) -> UserEmail | None:
        if user_email_id < 1:
            return None
        statement = select(UserEmailModel).where(UserEmailModel.id == user_email_id)
        result = await self.session.execute(statement)
        model = result.scalar_one_or_none()
        return self.mapper.to_domain(model) if model else None

    async def get_by_email(self, email: str) -> UserEmail | None:
        statement = select(UserEmailModel).where(UserEmailModel.email == email)
        result = await self.session.execute(statement)
        model = result.scalar_one_or_none()
        return self.mapper.to_domain(model) if model else None

    async def create(self, user_email: UserEmail) -> UserEmail:
        model = self.mapper.to_model(user_email)
        model.id = None
        model.lock_version = 0
        try:
            async with self.session.begin_nested():
                self.session.add(model)
                await self.session.flush()
        except IntegrityError as e:
            self.logger.warning(f"Rejected user_email insert: {e.orig}")
            raise EmailAlreadyClaimedError(user_email.email or "") from e

        await self.session.refresh(model)
        created = self.mapper.to_domain(model)
        for event in user_email.get_domain_events():
            created.add_domain_event(event.model_copy(update={"user_email_id": created.id}))
        self._stage_events_from_entity(created)
        return created

    async def update(self, user_email: UserEmail) -> UserEmail:
        expected_version = user_email.lock_version
        statement = (
            update(UserEmailModel)
            .where(
                UserEmailModel.id == user_email.id,
                UserEmailModel.lock_version == expected_version,
            )
            .values(
                email=user_email.email,
                role=user_email.role,
                identification_state=user_email.identification_state,
                identification_token=user_email.identification_token,
                identification_token_expires_at=user_email.identification_token_expires_at,
                identification_token_granted_at=user_email.identification_token_granted_at,
                updated_at=user_email.updated_at,
                lock_version=expected_version + 1,
            )
            .returning(UserEmailModel.id)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(statement)
                updated_id = result.scalar_one_or_none()
        except IntegrityError as e:
            self.logger.warning(f"Rejected user_email update: {e.orig}")
            raise EmailAlreadyClaimedError(user_email.email or "") from e

        if updated_id is None:
            raise StaleRecordError("UserEmail", user_email.id)

        user_email.lock_version = expected_version + 1
        self._stage_events_from_entity(user_email)
        return user_email

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            self._discard_staged_events()
            raise
        await self._publish_staged_events()
