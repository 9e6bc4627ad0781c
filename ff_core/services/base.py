"""
基础服务类
"""
from typing import Optional, Dict, Any, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ff_core.database import DatabaseManager
from ff_core.event_bus import EventBus
from ff_core.utils.logger import get_logger
from ff_core.utils.errors import (
    FulfilFlowException, ConflictError, InternalServerError
)


class BaseService:
    """基础服务类

    数据库管理器和事件总线由容器注入。
    """

    def __init__(self, db_manager: DatabaseManager, event_bus: Optional[EventBus] = None):
        self.db_manager = db_manager
        self.event_bus = event_bus
        self.logger = get_logger(self.__class__.__name__)

    async def execute_with_transaction(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """在事务中执行操作（成功提交，异常回滚）"""
        try:
            async with self.db_manager.get_transaction() as session:
                return await operation(session, *args, **kwargs)
        except FulfilFlowException:
            raise
        except StaleDataError:
            # 版本号不匹配：另一个写入者已提交
            self.logger.warning("Concurrent update detected", exc_info=True)
            raise ConflictError(
                code="CONCURRENT_UPDATE",
                detail="Record was modified by a concurrent update"
            )
        except Exception as e:
            self.logger.error("Transaction operation failed", exc_info=True)
            raise InternalServerError(
                code="TRANSACTION_FAILED",
                detail=f"Database transaction failed: {str(e)}"
            )

    async def execute_with_session(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """使用数据库会话执行只读操作"""
        try:
            async with self.db_manager.get_session() as session:
                return await operation(session, *args, **kwargs)
        except FulfilFlowException:
            raise
        except Exception as e:
            self.logger.error("Session operation failed", exc_info=True)
            raise InternalServerError(
                code="SESSION_OPERATION_FAILED",
                detail=f"Database operation failed: {str(e)}"
            )

    async def publish_event(self, topic: str, payload: Dict[str, Any]) -> None:
        """提交后发布领域事件"""
        if self.event_bus is None:
            return
        try:
            await self.event_bus.publish(topic, payload)
            self.logger.debug(f"Published event: {topic}")
        except Exception as e:
            # 事件发布失败不应该影响主流程
            self.logger.warning(f"Failed to publish event {topic}: {e}")


class RepositoryMixin:
    """仓储混入类 - 提供常用的数据库操作"""

    async def get_by_id(
        self,
        session: AsyncSession,
        model_class,
        record_id: str,
        for_update: bool = False,
        options: Optional[List[Any]] = None
    ) -> Optional[Any]:
        """根据ID获取记录（可选行锁）"""
        stmt = select(model_class).where(model_class.id == record_id)
        if options:
            stmt = stmt.options(*options)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_many_by_ids(
        self,
        session: AsyncSession,
        model_class,
        record_ids: List[str],
        for_update: bool = False,
        options: Optional[List[Any]] = None
    ) -> List[Any]:
        """根据ID批量获取记录（按主键排序加锁，避免死锁）"""
        if not record_ids:
            return []
        stmt = (
            select(model_class)
            .where(model_class.id.in_(record_ids))
            .order_by(model_class.id)
        )
        if options:
            stmt = stmt.options(*options)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return list(result.scalars().all())
