"""Celery 任务自动重试的异常集合。

Broker 或 Redis 暂时不可用时重试；业务异常由任务自行转换为 RetryableTaskError
或直接失败。
"""

from kombu.exceptions import OperationalError as KombuOperationalError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from eloquentlog.core.infrastructure.redis.client import RedisUnavailableError


class RetryableTaskError(RuntimeError):
    """任务主动声明可重试。"""


DEFAULT_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    RetryableTaskError,
    RedisUnavailableError,
    RedisConnectionError,
    RedisTimeoutError,
    KombuOperationalError,
    TimeoutError,
)
