"""User email domain entities."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from eloquentlog.core.domain.aggregate_root import AggregateRoot
from eloquentlog.core.domain.base_entity import utc_now


class UserEmailRole(str, Enum):
    """Role of an address within its user's set of emails."""

    GENERAL = "general"
    PRIMARY = "primary"


class IdentificationState(str, Enum):
    """Email ownership verification state."""

    PENDING = "pending"
    DONE = "done"


class UserEmail(AggregateRoot):
    """An email address claimed by a user and its verification state.

    Invariants:
    - ``done`` implies no token and a ``identification_token_granted_at``.
    - ``done`` is terminal.
    - at most one token is active; granting a new one replaces the old.
    """

    user_id: int = Field(..., description="所属用户ID")
    email: str | None = Field(default=None, description="邮箱地址（全局唯一）")
    role: UserEmailRole = Field(default=UserEmailRole.GENERAL, description="角色")
    identification_state: IdentificationState = Field(
        default=IdentificationState.PENDING, description="验证状态"
    )
    identification_token: str | None = Field(default=None, description="验证 token")
    identification_token_expires_at: datetime | None = Field(
        default=None, description="token 过期时间"
    )
    identification_token_granted_at: datetime | None = Field(
        default=None, description="验证完成时间"
    )

    def __str__(self) -> str:
        return f"<UserEmail {self.role.value}>"

    @property
    def is_identified(self) -> bool:
        return self.identification_state == IdentificationState.DONE

    def has_pending_token(self) -> bool:
        return not self.is_identified and self.identification_token is not None

    def is_token_expired(self, now: datetime | None = None) -> bool:
        """Check expiry; the expiry instant itself counts as expired."""
        if self.identification_token_expires_at is None:
            return True
        current = now or utc_now()
        return current >= self.identification_token_expires_at

    def grant_identification_token(
        self,
        token: str,
        expires_at: datetime,
        now: datetime | None = None,
    ) -> None:
        """Attach a fresh token, superseding any earlier one."""
        from eloquentlog.modules.user_emails.domain.exceptions import (
            IdentificationNotPendingError,
        )

        if self.is_identified:
            raise IdentificationNotPendingError(self.id)

        current = now or utc_now()
        self.identification_token = token
        self.identification_token_expires_at = expires_at
        self._update_timestamp(current)

    def restore_identification_token(
        self,
        token: str | None,
        expires_at: datetime | None,
        now: datetime | None = None,
    ) -> None:
        """Put back a previous token/expiry pair after a failed issuance."""
        self.identification_token = token
        self.identification_token_expires_at = expires_at
        self._update_timestamp(now)

    def mark_as_identified(self, now: datetime | None = None) -> None:
        """Transition to ``done``; the token is consumed."""
        current = now or utc_now()
        self.identification_state = IdentificationState.DONE
        self.identification_token = None
        self.identification_token_expires_at = None
        self.identification_token_granted_at = current
        self._update_timestamp(current)

        from eloquentlog.modules.user_emails.domain.events import UserEmailIdentifiedEvent

        self.add_domain_event(
            UserEmailIdentifiedEvent(
                user_email_id=self.id,
                user_id=self.user_id,
                email=self.email,
            )
        )

