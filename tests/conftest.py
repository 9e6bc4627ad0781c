"""
Pytest 配置和 fixtures

测试使用内存 SQLite（aiosqlite）代替 PostgreSQL，外部网关全部替换为内存假实现。
"""
import pytest
import pytest_asyncio

from ff_core.config import Settings
from ff_core.container import EngineContainer
from ff_core.database import DatabaseManager
from tests.fakes import (
    FakeCarrierGateway,
    FakeRefundGateway,
    FakeNotificationDispatcher,
    FakeEventBus,
    Seeder,
)


@pytest.fixture
def settings() -> Settings:
    """测试配置"""
    return Settings(
        database_url_override="sqlite+aiosqlite:///:memory:",
        events_enabled=False,
        log_level="WARNING",
        log_format="text",
        return_group_concurrency=1,
        refund_timeout_seconds=0.2,
        carrier_timeout_seconds=0.2,
        notification_timeout_seconds=0.2,
        _env_file=None,
    )


@pytest_asyncio.fixture
async def db_manager(settings):
    """数据库管理器 fixture（每个测试一个全新的内存库）"""
    manager = DatabaseManager(settings)
    await manager.create_tables()
    yield manager
    await manager.drop_tables()
    await manager.close()


@pytest.fixture
def carrier_gateway() -> FakeCarrierGateway:
    return FakeCarrierGateway()


@pytest.fixture
def refund_gateway() -> FakeRefundGateway:
    return FakeRefundGateway()


@pytest.fixture
def notifier() -> FakeNotificationDispatcher:
    return FakeNotificationDispatcher()


@pytest.fixture
def event_bus() -> FakeEventBus:
    return FakeEventBus()


@pytest.fixture
def container(settings, db_manager, carrier_gateway, refund_gateway, notifier, event_bus) -> EngineContainer:
    return EngineContainer(
        settings,
        db_manager=db_manager,
        event_bus=event_bus,
        carrier_gateway=carrier_gateway,
        refund_gateway=refund_gateway,
        notification_dispatcher=notifier,
    )


@pytest.fixture
def seed(db_manager) -> Seeder:
    return Seeder(db_manager)
