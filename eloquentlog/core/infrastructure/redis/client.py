"""Redis 客户端封装。

只暴露验证邮件队列用到的命令；其余命令通过 `client` 属性直接访问。
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from redis.exceptions import RedisError

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import Pipeline
    from redis.commands.core import AsyncScript

from eloquentlog.core.config import settings

_SOCKET_TIMEOUT = 30.0


class RedisUnavailableError(RuntimeError):
    """Redis 连接失败或 ping 超时。"""


class RedisClient:
    def __init__(self, url: str | None = None):
        self._url = url or settings.REDIS_URL
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        """首次访问时创建连接池。"""
        if self._client is None:
            self._client = aioredis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=_SOCKET_TIMEOUT,
                socket_connect_timeout=5.0,
                retry_on_timeout=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _check(self, timeout: float) -> None:
        try:
            ok = await asyncio.wait_for(self.client.ping(), timeout=timeout)
        except TimeoutError as e:
            raise RedisUnavailableError(f"ping timed out after {timeout}s") from e
        except (RedisError, OSError) as e:
            raise RedisUnavailableError(f"ping failed: {e}") from e
        if not ok:
            raise RedisUnavailableError("ping returned a falsy reply")

    @asynccontextmanager
    async def ensure_available(
        self, *, timeout: float = 5.0, close_on_exit: bool = False
    ) -> AsyncIterator[RedisClient]:
        """进入前 ping 一次，不可达时抛出 RedisUnavailableError。"""
        try:
            await self._check(timeout)
            yield self
        finally:
            if close_on_exit:
                await self.close()

    def pipeline(self, transaction: bool = True) -> Pipeline:
        return self.client.pipeline(transaction=transaction)

    def register_script(self, source: str) -> AsyncScript:
        """注册 Lua 脚本；调用时按 SHA 执行，脚本缓存丢失时自动重新加载。"""
        return self.client.register_script(source)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return await self.client.lrange(key, start, end)

    async def hget(self, key: str, field: str) -> str | None:
        return await self.client.hget(key, field)

    async def hmget(self, key: str, fields: list[str]) -> list[str | None]:
        return await self.client.hmget(key, fields)


@asynccontextmanager
async def get_async_redis_client(
    *, timeout: float = 5.0, url: str | None = None
) -> AsyncIterator[RedisClient]:
    """打开、校验并在退出时关闭一个客户端。

    Celery 任务每次 asyncio.run() 都是新事件循环，连接不能跨任务复用。
    """
    client = RedisClient(url=url)
    async with client.ensure_available(timeout=timeout, close_on_exit=True):
        yield client
