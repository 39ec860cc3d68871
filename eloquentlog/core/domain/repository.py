"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import TypeVar

T = TypeVar("T")


class BaseRepository[T](ABC):
    """基础Repository接口，定义通用读写操作"""

    @abstractmethod
    async def get_by_id(self, entity_id: int) -> T | None:
        """根据ID获取实体"""
        pass

    @abstractmethod
    async def create(self, entity: T) -> T:
        """创建实体"""
        pass

    @abstractmethod
    async def update(self, entity: T) -> T:
        """更新实体

        Implementations must compare ``lock_version`` with the stored row and
        raise ``StaleRecordError`` when another writer got there first.
        """
        pass
