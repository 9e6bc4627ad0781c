"""
FulfilFlow 事件总线
基于 Redis Streams 发布领域事件（持久化，供下游消费）
"""
import json
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextlib import asynccontextmanager

import redis.asyncio as redis

from ff_core.config import Settings
from ff_core.utils.logger import get_logger

logger = get_logger(__name__)

TOPIC_PREFIX = "ff."


class EventPayload:
    """事件载荷"""

    def __init__(
        self,
        event_id: Optional[str] = None,
        topic: str = "",
        payload: Optional[Dict[str, Any]] = None,
        timestamp: Optional[str] = None
    ):
        self.event_id = event_id or str(uuid.uuid4())
        self.topic = topic
        self.payload = payload or {}
        self.timestamp = timestamp or datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "event_id": self.event_id,
            "ts": self.timestamp,
            "topic": self.topic,
            "payload": self.payload
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventPayload":
        """从字典创建"""
        return cls(
            event_id=data.get("event_id"),
            topic=data.get("topic", ""),
            payload=data.get("payload", {}),
            timestamp=data.get("ts")
        )


class EventBus:
    """事件总线实现（只负责发布）"""

    def __init__(self, settings: Settings, client: Optional[redis.Redis] = None):
        self.settings = settings
        self.redis_client: Optional[redis.Redis] = client

    @asynccontextmanager
    async def _get_redis(self):
        """获取 Redis 连接"""
        if not self.redis_client:
            self.redis_client = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        try:
            yield self.redis_client
        except Exception:
            logger.error("Redis operation failed", exc_info=True)
            raise

    async def initialize(self) -> None:
        """初始化事件总线"""
        logger.info("Initializing event bus")

        # 测试 Redis 连接
        async with self._get_redis() as r:
            await r.ping()

        logger.info("Event bus initialized")

    async def shutdown(self) -> None:
        """关闭事件总线"""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None

        logger.info("Event bus shutdown complete")

    def _get_stream_name(self, topic: str) -> str:
        """获取 Redis Stream 名称"""
        return f"ff:events:{topic}"

    async def publish(
        self,
        topic: str,
        payload: Dict[str, Any],
        key: Optional[str] = None
    ) -> str:
        """发布事件到指定主题"""
        if not topic.startswith(TOPIC_PREFIX):
            raise ValueError(f"Invalid topic format: {topic}")

        event = EventPayload(topic=topic, payload=payload)

        event_data = {
            "data": json.dumps(event.to_dict(), default=str)
        }

        # 如果提供了 key，用于分区
        if key:
            event_data["key"] = key

        async with self._get_redis() as r:
            message_id = await r.xadd(self._get_stream_name(topic), event_data)

        logger.debug(
            f"Published event to {topic}",
            event_id=event.event_id,
            message_id=message_id
        )

        return event.event_id
