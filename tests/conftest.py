"""
pytest 配置和共享 fixtures。

测试分层：
- unit/: 单元测试（不依赖外部服务，使用 tests/fakes.py 中的内存实现）
- integration/: 集成测试（需要 PostgreSQL / Redis）

使用方法：
    # 只运行单元测试
    pytest tests/unit/

    # 运行集成测试（需要设置 TEST_DATABASE_URL / TEST_REDIS_URL）
    pytest tests/integration/ -m integration
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from eloquentlog.core.config import Settings
from eloquentlog.modules.user_emails.application.token_generator import (
    IdentificationTokenGenerator,
)
from eloquentlog.modules.user_emails.domain.entities import (
    IdentificationState,
    UserEmail,
    UserEmailRole,
)
from tests.fakes import FakeEmailDispatcher, InMemoryJobQueue, InMemoryUserEmailRepository


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def test_settings() -> Settings:
    """测试环境配置。"""
    return Settings(
        ENVIRONMENT="testing",
        SECRET_KEY="test-secret-key-for-testing-only",
        FRONTEND_HOST="https://app.example.test",
        REDIS_URL="redis://localhost:6379/1",
        IDENTIFICATION_MAX_ATTEMPTS=3,
    )


# ============================================
# 时间控制
# ============================================


class FakeClock:
    """可手动推进的时钟。"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 6, 9, 0, tzinfo=UTC))


# ============================================
# 内存实现
# ============================================


@pytest.fixture
def user_email_repo() -> InMemoryUserEmailRepository:
    return InMemoryUserEmailRepository()


@pytest.fixture
def job_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def email_dispatcher() -> FakeEmailDispatcher:
    return FakeEmailDispatcher()


@pytest.fixture
def token_generator(clock: FakeClock) -> IdentificationTokenGenerator:
    return IdentificationTokenGenerator(
        length=128, validity=timedelta(hours=24), clock=clock
    )


@pytest.fixture
def make_user_email(
    user_email_repo: InMemoryUserEmailRepository,
) -> Callable[..., UserEmail]:
    """在内存仓储中创建一条 pending 记录。"""

    def _make(
        user_id: int = 1,
        email: str | None = "alice@example.com",
        role: UserEmailRole = UserEmailRole.GENERAL,
    ) -> UserEmail:
        return user_email_repo.add(
            UserEmail(
                user_id=user_id,
                email=email,
                role=role,
                identification_state=IdentificationState.PENDING,
            )
        )

    return _make


# ============================================
# Mock 基础设施
# ============================================


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Mock 数据库会话（用于纯单元测试）。"""
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.begin_nested = MagicMock()
    session.begin_nested.return_value.__aenter__ = AsyncMock(return_value=None)
    session.begin_nested.return_value.__aexit__ = AsyncMock(return_value=False)
    return session
