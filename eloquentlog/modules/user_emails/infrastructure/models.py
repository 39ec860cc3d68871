"""User email database models."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, String
from sqlmodel import Field

from eloquentlog.core.infrastructure.database.base_model import BaseModel
from eloquentlog.modules.user_emails.domain.entities import (
    IdentificationState,
    UserEmailRole,
)


class UserEmailModel(BaseModel, table=True):
    """User email database model."""

    __tablename__ = "user_emails"

    # users live outside this service; the foreign key is declared in migrations
    user_id: int = Field(sa_type=BigInteger, nullable=False, index=True)
    email: str | None = Field(
        default=None,
        sa_type=String(64),
        nullable=True,
        unique=True,
        index=True,
    )
    role: UserEmailRole = Field(
        default=UserEmailRole.GENERAL,
        sa_type=Enum(
            UserEmailRole,
            name="e_user_email_role",
            values_callable=lambda e: [i.value for i in e],
            create_constraint=False,
        ),
        nullable=False,
        index=True,
    )
    identification_state: IdentificationState = Field(
        default=IdentificationState.PENDING,
        sa_type=Enum(
            IdentificationState,
            name="e_user_email_identification_state",
            values_callable=lambda e: [i.value for i in e],
            create_constraint=False,
        ),
        nullable=False,
        index=True,
    )
    identification_token: str | None = Field(
        default=None,
        sa_type=String(256),
        nullable=True,
        index=True,
    )
    identification_token_expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        nullable=True,
    )
    identification_token_granted_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        nullable=True,
    )
