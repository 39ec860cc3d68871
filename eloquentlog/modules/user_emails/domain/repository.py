"""User email repository interface."""

from abc import abstractmethod

from eloquentlog.core.domain.repository import BaseRepository
from eloquentlog.modules.user_emails.domain.entities import UserEmail


class UserEmailRepository(BaseRepository[UserEmail]):
    """User email repository interface.

    The store is the only place record mutations are serialized: ``update``
    succeeds only while the stored ``lock_version`` equals the entity's, and
    bumps it. ``create`` and ``update`` raise ``EmailAlreadyClaimedError``
    when the unique email constraint rejects the write.

    Writes become visible to other sessions, and their domain events are
    published, only after ``commit``.
    """

    @abstractmethod
    async def get_by_email(self, email: str) -> UserEmail | None:
        """Get the record that holds ``email``."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Make earlier writes durable, then publish their events."""
        pass
