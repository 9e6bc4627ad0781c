"""
FulfilFlow Configuration Management
遵循约束：环境变量前缀 FF__
"""
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ff_core.models.enums import Carrier, enum_values


class Settings(BaseSettings):
    """全局配置类"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FF__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )

    # Database
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="fulfilflow")
    db_user: str = Field(default="fulfilflow")
    db_password: str = Field(default="")
    db_pool_size: int = Field(default=20)
    db_max_overflow: int = Field(default=40)
    # 完整连接串（测试中使用 sqlite+aiosqlite）
    database_url_override: Optional[str] = Field(default=None, alias="FF__DATABASE_URL")
    slow_query_threshold_ms: int = Field(default=100)

    # Redis
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    redis_password: Optional[str] = Field(default=None)

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_prefix: str = Field(default="/api/ff/v1")
    api_title: str = Field(default="FulfilFlow API")
    api_version: str = Field(default="1.0.0")
    api_debug: bool = Field(default=False)

    # Monitoring
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # 领域事件
    events_enabled: bool = Field(default=True)

    # 承运商网关（未配置 base_url 时走本地运单号生成）
    carrier_api_base_url: Optional[str] = Field(default=None)
    carrier_api_key: Optional[str] = Field(default=None)
    carrier_timeout_seconds: float = Field(default=10.0)

    # 退款网关
    refund_api_base_url: Optional[str] = Field(default=None)
    refund_api_key: Optional[str] = Field(default=None)
    refund_timeout_seconds: float = Field(default=15.0)
    # 退款认领过期时间，过期后允许重试
    refund_claim_ttl_seconds: float = Field(default=300.0)

    # 通知（事务邮件）网关
    notification_api_base_url: str = Field(default="https://api.brevo.com")
    notification_api_key: Optional[str] = Field(default=None)
    notification_sender_email: str = Field(default="returns@fulfilflow.local")
    notification_sender_name: str = Field(default="FulfilFlow Returns")
    notification_timeout_seconds: float = Field(default=10.0)

    # 退货合并
    default_return_carrier: str = Field(default=Carrier.POSTA.value)
    default_item_weight_kg: Decimal = Field(default=Decimal("1.0"))
    return_group_concurrency: int = Field(default=4)
    currency: str = Field(default="RON")

    # 退货面单上的仓库退货地址
    return_address_name: str = Field(default="FulfilFlow Returns")
    return_address_line1: str = Field(default="Strada Depozitului 1")
    return_address_line2: Optional[str] = Field(default=None)
    return_address_city: str = Field(default="Bucuresti")
    return_address_state: Optional[str] = Field(default=None)
    return_address_postal_code: Optional[str] = Field(default=None)
    return_address_country: str = Field(default="Romania")
    return_address_phone: Optional[str] = Field(default=None)

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v):
        """确保 API 前缀符合规范"""
        if not v.startswith("/api/ff/"):
            raise ValueError("API prefix must start with /api/ff/")
        return v

    @field_validator("default_return_carrier")
    @classmethod
    def validate_default_return_carrier(cls, v):
        """默认退货承运商必须在承运商目录中"""
        if v not in enum_values(Carrier):
            raise ValueError(f"Unknown carrier {v!r}, expected one of {enum_values(Carrier)}")
        return v

    @field_validator("default_item_weight_kg")
    @classmethod
    def validate_default_item_weight(cls, v):
        if v <= 0:
            raise ValueError("Default item weight must be positive")
        return v

    @field_validator("return_group_concurrency")
    @classmethod
    def validate_group_concurrency(cls, v):
        if v < 1:
            raise ValueError("Return group concurrency must be at least 1")
        return v

    @property
    def database_url(self) -> str:
        """构建数据库连接字符串"""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def sync_database_url(self) -> str:
        """构建同步数据库连接字符串（用于 Alembic）"""
        if self.database_url_override:
            return (
                self.database_url_override
                .replace("+asyncpg", "")
                .replace("+aiosqlite", "")
            )
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url(self) -> str:
        """构建 Redis 连接字符串"""
        password = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{password}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()
