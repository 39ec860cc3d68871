"""User email entity-model mappers."""

from eloquentlog.core.infrastructure.database.mapper import BaseMapper
from eloquentlog.modules.user_emails.domain.entities import UserEmail
from eloquentlog.modules.user_emails.infrastructure.models import UserEmailModel


class UserEmailMapper(BaseMapper[UserEmail, UserEmailModel]):
    """User email entity-model mapper."""

    def to_domain(self, model: UserEmailModel) -> UserEmail:
        return UserEmail(
            id=model.id,
            user_id=model.user_id,
            email=model.email,
            role=model.role,
            identification_state=model.identification_state,
            identification_token=model.identification_token,
            identification_token_expires_at=model.identification_token_expires_at,
            identification_token_granted_at=model.identification_token_granted_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            lock_version=model.lock_version,
        )

    def to_model(self, entity: UserEmail) -> UserEmailModel:
        return UserEmailModel(
            id=entity.id,
            user_id=entity.user_id,
            email=entity.email,
            role=entity.role,
            identification_state=entity.identification_state,
            identification_token=entity.identification_token,
            identification_token_expires_at=entity.identification_token_expires_at,
            identification_token_granted_at=entity.identification_token_granted_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            lock_version=entity.lock_version,
        )
