"""日志配置。

- loguru: 运行日志（Worker 循环、队列、SMTP）
- structlog: 验证流程的业务事件，JSON 输出便于检索

验证 token 与密码不会传入任何一个 logger。
"""

import logging
import sys
from typing import Any

import structlog
from loguru import logger

from eloquentlog.core.config import settings

_LOGURU_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> {message}"
)


def setup_logging(level: str | None = None) -> None:
    """初始化 loguru 与 structlog，两者都写 stderr。"""
    level = (level or settings.LOG_LEVEL).upper()
    numeric = logging.getLevelNamesMapping().get(level, logging.INFO)

    logger.remove()
    logger.add(
        sys.stderr,
        level=numeric,
        format=_LOGURU_FORMAT,
        colorize=settings.ENVIRONMENT == "local",
        backtrace=settings.ENVIRONMENT == "local",
    )

    local = settings.ENVIRONMENT == "local"
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True)
            if local
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    logger.debug(f"logging ready ({level}, env={settings.ENVIRONMENT})")


class BusinessEvents:
    """验证流程业务事件。

    每个方法对应一个事件名，字段只包含记录 ID、任务 ID 等可检索信息。
    """

    _log = structlog.get_logger("eloquentlog.identification")

    @classmethod
    def _emit(cls, level: str, event: str, category: str, **fields: Any) -> None:
        getattr(cls._log, level)(event, event_type=category, **fields)

    @classmethod
    def identification_token_issued(
        cls, record_id: int, user_id: int, expires_at: Any, **extra: Any
    ) -> None:
        cls._emit(
            "info",
            "identification_token_issued",
            "identification",
            record_id=record_id,
            user_id=user_id,
            expires_at=str(expires_at),
            **extra,
        )

    @classmethod
    def identification_verified(cls, record_id: int, user_id: int, **extra: Any) -> None:
        cls._emit(
            "info",
            "identification_verified",
            "identification",
            record_id=record_id,
            user_id=user_id,
            **extra,
        )

    @classmethod
    def identification_verify_failed(
        cls, record_id: int, reason: str, **extra: Any
    ) -> None:
        """失败原因只记录错误码，便于按记录统计暴力尝试。"""
        cls._emit(
            "warning",
            "identification_verify_failed",
            "identification_error",
            record_id=record_id,
            reason=reason,
            **extra,
        )

    @classmethod
    def identification_email_enqueued(
        cls, record_id: int, job_id: str, **extra: Any
    ) -> None:
        cls._emit(
            "info",
            "identification_email_enqueued",
            "email",
            record_id=record_id,
            job_id=job_id,
            **extra,
        )

    @classmethod
    def identification_email_sent(
        cls, record_id: int, job_id: str, to_email: str, success: bool, **extra: Any
    ) -> None:
        cls._emit(
            "info" if success else "warning",
            "identification_email_sent",
            "email",
            record_id=record_id,
            job_id=job_id,
            to_email=to_email,
            success=success,
            **extra,
        )

    @classmethod
    def identification_email_dead_lettered(
        cls, record_id: int, job_id: str, attempts: int, error: str, **extra: Any
    ) -> None:
        """进入死信的任务需要人工处理。"""
        cls._emit(
            "error",
            "identification_email_dead_lettered",
            "email_error",
            record_id=record_id,
            job_id=job_id,
            attempts=attempts,
            error=error,
            **extra,
        )

    @classmethod
    def identification_jobs_reclaimed(cls, queue: str, count: int, **extra: Any) -> None:
        cls._emit(
            "warning",
            "identification_jobs_reclaimed",
            "queue",
            queue=queue,
            count=count,
            **extra,
        )
