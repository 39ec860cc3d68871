"""Celery 应用配置。

邮件投递由独立的 dispatch worker 负责；Celery 只承担周期性维护：
- 使用 JSON 序列化
- 按功能拆分队列
- 配置定时任务（Beat）
"""

from celery import Celery
from kombu import Exchange, Queue

from eloquentlog.core.config import settings
from eloquentlog.core.infrastructure.celery.queues import TASK_ROUTES, Queues

celery_app = Celery("eloquentlog")

celery_app.conf.update(
    broker_url=settings.celery_broker_url,
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    accept_content=settings.CELERY_ACCEPT_CONTENT,
    timezone=settings.TIMEZONE,
    enable_utc=True,
    task_ignore_result=True,
    task_time_limit=120,
    task_soft_time_limit=90,
    task_default_retry_delay=settings.CELERY_TASK_DEFAULT_RETRY_DELAY,
    task_max_retries=settings.CELERY_TASK_MAX_RETRIES,
    task_acks_late=True,  # 任务完成后才确认
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
)

default_exchange = Exchange("default", type="direct")
celery_app.conf.task_queues = (
    Queue(Queues.MAINTENANCE, default_exchange, routing_key=Queues.MAINTENANCE),
)
celery_app.conf.task_routes = TASK_ROUTES
celery_app.conf.task_default_queue = Queues.MAINTENANCE

# 定时任务配置（Celery Beat）
celery_app.conf.beat_schedule = {
    # 回收 Worker 崩溃后遗留的验证邮件任务
    "reclaim-stale-identification-jobs": {
        "task": "eloquentlog.modules.user_emails.tasks.reclaim_stale_identification_jobs",
        "schedule": settings.IDENTIFICATION_RECLAIM_INTERVAL_SEC,
        "options": {"queue": Queues.MAINTENANCE},
    },
}

celery_app.autodiscover_tasks(["eloquentlog.modules.user_emails"], related_name="tasks")
