"""User email command handlers."""

from loguru import logger

from eloquentlog.modules.user_emails.application.commands import ClaimUserEmailCommand
from eloquentlog.modules.user_emails.domain.entities import (
    IdentificationState,
    UserEmail,
)
from eloquentlog.modules.user_emails.domain.events import UserEmailClaimedEvent
from eloquentlog.modules.user_emails.domain.exceptions import EmailAlreadyClaimedError
from eloquentlog.modules.user_emails.domain.repository import UserEmailRepository


class ClaimUserEmailHandler:
    """Handle claiming an address.

    The new record is always ``pending`` with no token; token columns stay
    empty until the state machine issues one.
    """

    def __init__(self, user_email_repository: UserEmailRepository):
        self.user_email_repository = user_email_repository
        self.logger = logger

    async def handle(self, command: ClaimUserEmailCommand) -> UserEmail:
        email = str(command.email)
        # fast path only; the unique index decides under concurrency
        if await self.user_email_repository.get_by_email(email):
            raise EmailAlreadyClaimedError(email)

        user_email = UserEmail(
            user_id=command.user_id,
            email=email,
            role=command.role,
            identification_state=IdentificationState.PENDING,
        )
        user_email.add_domain_event(
            UserEmailClaimedEvent(user_id=command.user_id, role=command.role.value)
        )

        user_email = await self.user_email_repository.create(user_email)
        await self.user_email_repository.commit()
        self.logger.info(f"User {command.user_id} claimed {user_email}")
        return user_email
