"""User email domain events."""

from pydantic import Field

from eloquentlog.core.domain.events import DomainEvent


class UserEmailClaimedEvent(DomainEvent):
    """Event raised when a user claims an email address."""

    user_email_id: int | None = Field(default=None, description="记录ID")
    user_id: int = Field(..., description="用户ID")
    role: str = Field(..., description="角色")


class UserEmailIdentifiedEvent(DomainEvent):
    """Event raised when email ownership has been proven."""

    user_email_id: int | None = Field(default=None, description="记录ID")
    user_id: int = Field(..., description="用户ID")
    email: str | None = Field(default=None, description="邮箱地址")
