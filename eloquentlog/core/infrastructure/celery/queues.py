"""Celery 队列定义。

- q_maintenance: 队列维护（回收超时认领等）
"""

from enum import StrEnum


class Queues(StrEnum):
    """Celery 队列枚举。"""

    MAINTENANCE = "q_maintenance"


# 任务名称模式 -> 队列
TASK_ROUTES = {
    "eloquentlog.modules.*.tasks.reclaim_*": {"queue": Queues.MAINTENANCE},
}
