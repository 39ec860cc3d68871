"""Redis Key 命名规范。

Redis 在本服务中作为验证邮件任务队列的 Broker：
- queue:{name}:pending     待处理任务 ID 列表
- queue:{name}:processing  已被 Worker 认领、尚未确认的任务 ID 列表
- queue:{name}:jobs        任务 ID -> 任务 JSON 的哈希
- queue:{name}:claims      任务 ID -> 认领时间戳的有序集合
- queue:{name}:owners      任务 ID -> 认领凭证的哈希，ack/nack 只对持有者生效
- queue:{name}:dead        死信任务 ID 列表
"""


class RedisKeys:
    """Redis Key 命名空间管理。"""

    QUEUE_PREFIX = "queue"

    @classmethod
    def queue_pending(cls, name: str) -> str:
        return f"{cls.QUEUE_PREFIX}:{name}:pending"

    @classmethod
    def queue_processing(cls, name: str) -> str:
        return f"{cls.QUEUE_PREFIX}:{name}:processing"

    @classmethod
    def queue_jobs(cls, name: str) -> str:
        return f"{cls.QUEUE_PREFIX}:{name}:jobs"

    @classmethod
    def queue_claims(cls, name: str) -> str:
        return f"{cls.QUEUE_PREFIX}:{name}:claims"

    @classmethod
    def queue_dead(cls, name: str) -> str:
        return f"{cls.QUEUE_PREFIX}:{name}:dead"

    @classmethod
    def queue_claim_owners(cls, name: str) -> str:
        return f"{cls.QUEUE_PREFIX}:{name}:owners"
