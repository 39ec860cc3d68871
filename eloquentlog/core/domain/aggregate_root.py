"""Aggregate root base class with domain event support."""

from typing import TYPE_CHECKING

from eloquentlog.core.domain.base_entity import BaseEntity

if TYPE_CHECKING:
    from eloquentlog.core.domain.events import DomainEvent


class AggregateRoot(BaseEntity):
    """Base class for aggregate roots.

    Aggregates carry an optimistic ``lock_version``; repositories persist them
    only when the stored version still matches the one they were loaded with.
    """

    lock_version: int = 0

    def add_domain_event(self, event: "DomainEvent") -> None:
        """Add a domain event to be published."""
        self._add_domain_event(event)

    def has_domain_events(self) -> bool:
        """Check if there are any unpublished domain events."""
        return len(self._domain_events) > 0
