"""User email application commands."""

from pydantic import BaseModel, EmailStr

from eloquentlog.modules.user_emails.domain.entities import UserEmailRole


class ClaimUserEmailCommand(BaseModel):
    """Claim an address for a user."""

    user_id: int
    email: EmailStr
    role: UserEmailRole = UserEmailRole.GENERAL

    @classmethod
    def for_account_email(cls, user_id: int, email: str) -> "ClaimUserEmailCommand":
        """The address a user signed up with is their primary one."""
        return cls(user_id=user_id, email=email, role=UserEmailRole.PRIMARY)
