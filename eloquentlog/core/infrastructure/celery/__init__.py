"""Celery 配置与任务定义。"""

from eloquentlog.core.infrastructure.celery.app import celery_app
from eloquentlog.core.infrastructure.celery.queues import Queues

__all__ = ["celery_app", "Queues"]
