"""Event-aware repository base class."""

from eloquentlog.core.domain.base_entity import BaseEntity
from eloquentlog.core.domain.events import DomainEvent, EventBus


class EventAwareRepository[T: BaseEntity]:
    """Repository base class that publishes domain events after commit.

    Writes stage the entity events. A failed commit drops them, so subscribers
    never see state that was not persisted.
    """

    def __init__(self, event_publisher: EventBus):
        self._event_publisher = event_publisher
        self._staged_events: list[DomainEvent] = []

    def _stage_events_from_entity(self, entity: T) -> None:
        self._staged_events.extend(entity.get_domain_events())
        entity.clear_domain_events()

    def _discard_staged_events(self) -> None:
        self._staged_events.clear()

    async def _publish_staged_events(self) -> None:
        events, self._staged_events = self._staged_events, []
        if events:
            await self._event_publisher.publish_all(events)
