"""Domain events infrastructure.

Repositories publish events only after the transaction commits. A failing
subscriber is logged and does not undo the committed change.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import UTC, datetime
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class DomainEvent(BaseModel, ABC):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def event_type(self) -> str:
        return type(self).__name__


class DomainEventHandler(ABC):
    @abstractmethod
    async def handle(self, event: DomainEvent) -> None: ...


class EventBus:
    """Dispatch by event type, in subscription order."""

    def __init__(self) -> None:
        self._handlers: defaultdict[type[DomainEvent], list[DomainEventHandler]] = (
            defaultdict(list)
        )

    def subscribe(
        self, event_type: type[DomainEvent], handler: DomainEventHandler
    ) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, event: DomainEvent) -> None:
        for handler in self._handlers.get(type(event), ()):
            try:
                await handler.handle(event)
            except Exception:
                logger.exception(
                    f"{type(handler).__name__} failed on {event.event_type} "
                    f"({event.event_id})"
                )

    async def publish_all(self, events: list[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
