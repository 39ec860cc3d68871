#!/usr/bin/env python3
"""验证邮件投递 Worker。

从 Redis 队列消费验证邮件任务并通过 SMTP 发送。
收到 SIGINT/SIGTERM 时处理完当前任务后退出。

使用方式：
    python scripts/run_dispatch_worker.py

    # 使用本地调试 SMTP 服务器（如 aiosmtpd / mailpit）
    python scripts/run_dispatch_worker.py --smtp-host localhost --smtp-port 1025 --no-tls

    # 只处理一个任务后退出
    python scripts/run_dispatch_worker.py --once
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


async def run_worker(args: argparse.Namespace) -> int:
    from loguru import logger

    from eloquentlog.core.infrastructure.email.smtp import SMTPProvider
    from eloquentlog.core.infrastructure.redis import (
        RedisUnavailableError,
        get_async_redis_client,
    )
    from eloquentlog.modules.user_emails.infrastructure.dependencies import (
        build_dispatch_worker,
    )
    from eloquentlog.modules.user_emails.infrastructure.email_dispatcher import (
        SMTPEmailDispatcher,
    )

    provider = SMTPProvider(
        host=args.smtp_host,
        port=args.smtp_port,
        use_tls=False if args.no_tls else None,
    )
    if not provider.is_configured():
        logger.error("SMTP is not configured (SMTP_HOST / EMAILS_FROM_EMAIL)")
        return 1

    if not args.no_record_check:
        from eloquentlog.core.infrastructure.database.session import init_db

        await init_db()

    try:
        async with get_async_redis_client() as redis_client:
            worker = build_dispatch_worker(
                redis_client,
                email_dispatcher=SMTPEmailDispatcher(provider),
                check_records=not args.no_record_check,
            )

            if args.once:
                outcome = await worker.run_once()
                logger.info(f"Processed one poll: {outcome}")
                return 0

            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop_event.set)

            await worker.run(stop_event)
    except RedisUnavailableError as e:
        logger.error(f"Redis unavailable: {e}")
        return 1

    return 0


def main():
    """主函数。"""
    parser = argparse.ArgumentParser(description="验证邮件投递 Worker")
    parser.add_argument("--smtp-host", type=str, default=None, help="覆盖 SMTP_HOST")
    parser.add_argument("--smtp-port", type=int, default=None, help="覆盖 SMTP_PORT")
    parser.add_argument("--no-tls", action="store_true", help="不使用 STARTTLS")
    parser.add_argument(
        "--no-record-check",
        action="store_true",
        help="发送前不回查数据库（仅依赖任务快照）",
    )
    parser.add_argument("--once", action="store_true", help="只处理一次后退出")

    args = parser.parse_args()

    from eloquentlog.core.infrastructure.logging import setup_logging

    setup_logging()
    sys.exit(asyncio.run(run_worker(args)))


if __name__ == "__main__":
    main()
