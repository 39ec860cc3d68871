"""Base mapper for entity-model conversion."""

from abc import ABC, abstractmethod


class BaseMapper[E, M](ABC):
    """Convert between domain entities (E) and SQLModel table models (M).

    The repository owns the lock_version comparison on update.
    """

    @abstractmethod
    def to_domain(self, model: M) -> E: ...

    @abstractmethod
    def to_model(self, entity: E) -> M: ...
