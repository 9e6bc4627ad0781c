"""
退货申请服务
- 无副作用的状态变更（拒绝、确认收货）
- 退款：认领 -> 调用退款网关 -> 记录结果，网关结果作为数据记录，从不抛出
批准必须走合并批准（需要运单），见 ff_core.services.consolidation
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ff_core.database import DatabaseManager
from ff_core.event_bus import EventBus
from ff_core.gateways.refund import RefundGateway, RefundOutcome
from ff_core.models import ReturnRequest
from ff_core.models.base import utcnow
from ff_core.models.enums import ReturnStatus, RefundStatus
from ff_core.utils.errors import (
    FulfilFlowException, ConflictError, NotFoundError, ValidationError, GatewayTimeoutError
)
from ff_core.utils.logger import LogContext
from .base import BaseService, RepositoryMixin
from .status_flow import RETURN_FLOW

# 只能通过专用操作到达的状态
DEDICATED_TARGETS = {
    ReturnStatus.APPROVED: "bulk approval",
    ReturnStatus.REFUNDED: "refund",
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite 读回的时间不带时区
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReturnsService(BaseService, RepositoryMixin):
    """退货申请服务"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        event_bus: Optional[EventBus] = None,
        refund_gateway: Optional[RefundGateway] = None,
        refund_timeout: float = 15.0,
        refund_claim_ttl: float = 300.0
    ):
        super().__init__(db_manager, event_bus)
        self.refund_gateway = refund_gateway
        self.refund_timeout = refund_timeout
        self.refund_claim_ttl = timedelta(seconds=refund_claim_ttl)

    async def get_return(self, return_id: str) -> ReturnRequest:
        """获取退货申请（含订单行）"""
        async def _get(session: AsyncSession) -> ReturnRequest:
            return_request = await self.get_by_id(
                session, ReturnRequest, return_id,
                options=[selectinload(ReturnRequest.order_item)]
            )
            if not return_request:
                raise NotFoundError(code="RETURN_NOT_FOUND", resource=f"Return request {return_id}")
            return return_request

        return await self.execute_with_session(_get)

    async def transition_status(self, return_id: str, target_status: str) -> ReturnRequest:
        """
        无副作用的状态变更（REJECTED、RECEIVED）

        Raises:
            ValidationError: 未知状态，或目标状态需要专用操作
            IllegalTransitionError: 状态机不允许
            NotFoundError: 退货申请不存在
        """
        target = RETURN_FLOW.parse(target_status)
        if target in DEDICATED_TARGETS:
            raise ValidationError(
                code="USE_DEDICATED_OPERATION",
                detail=f"{target.value} can only be reached through {DEDICATED_TARGETS[target]}"
            )

        return_request, previous_status = await self.execute_with_transaction(
            self._transition_tx, return_id, target
        )

        self.logger.info(
            "Return request status changed",
            return_id=return_id,
            order_id=return_request.order_id,
            from_status=previous_status,
            to_status=return_request.status
        )
        await self.publish_event("ff.returns.status_changed", {
            "return_id": return_id,
            "order_id": return_request.order_id,
            "from_status": previous_status,
            "to_status": return_request.status,
        })
        return return_request

    async def _transition_tx(self, session: AsyncSession, return_id: str, target: ReturnStatus):
        return_request = await self._lock_return(session, return_id)
        previous_status = return_request.status
        RETURN_FLOW.validate(previous_status, target)

        return_request.status = target.value
        if target == ReturnStatus.RECEIVED:
            return_request.received_at = utcnow()

        await session.flush()
        return return_request, previous_status

    async def refund_return(self, return_id: str) -> ReturnRequest:
        """
        退款（仅限 RECEIVED 状态）

        分三步，网关调用不持有行锁：
        1. 认领事务：校验 RECEIVED -> REFUNDED，写入 refund_requested_at
        2. 调用退款网关（有超时，以 return_id 作为幂等键）
        3. 结果事务：状态变为 REFUNDED，refund_status 记录结果
           SUCCESS / FAILED / PENDING（超时，结果未知）

        未过期的认领会拒绝并发退款；过期认领（进程在第 2、3 步之间退出）可以重新认领。

        Raises:
            IllegalTransitionError: 不是 RECEIVED 状态
            ConflictError: 退款进行中（REFUND_IN_PROGRESS）或认领已失效（REFUND_CLAIM_LOST）
        """
        if self.refund_gateway is None:
            raise ValidationError(code="REFUND_GATEWAY_NOT_CONFIGURED", detail="No refund gateway configured")

        with LogContext(return_id=return_id):
            claimed_version = await self.execute_with_transaction(self._claim_refund_tx, return_id)

            refund_status, refund_error = await self._call_refund_gateway(return_id)

            try:
                return_request = await self.execute_with_transaction(
                    self._record_refund_tx, return_id, claimed_version, refund_status, refund_error
                )
            except FulfilFlowException as e:
                # 认领保留，过期后可重试；网关以 return_id 去重
                self.logger.error(
                    "Refund outcome not recorded",
                    return_id=return_id,
                    refund_status=refund_status.value,
                    refund_error=refund_error,
                    code=e.code
                )
                raise

        self.logger.info(
            "Return refunded",
            return_id=return_id,
            order_id=return_request.order_id,
            refund_status=return_request.refund_status,
            refund_error=return_request.refund_error
        )
        await self.publish_event("ff.returns.refunded", {
            "return_id": return_id,
            "order_id": return_request.order_id,
            "refund_status": return_request.refund_status,
            "refund_error": return_request.refund_error,
        })
        return return_request

    async def _claim_refund_tx(self, session: AsyncSession, return_id: str) -> int:
        return_request = await self._lock_return(session, return_id)
        RETURN_FLOW.validate(return_request.status, ReturnStatus.REFUNDED)

        now = utcnow()
        claimed_at = _as_utc(return_request.refund_requested_at)
        if claimed_at is not None and now - claimed_at < self.refund_claim_ttl:
            raise ConflictError(
                code="REFUND_IN_PROGRESS",
                detail=f"A refund for return request {return_id} is already in progress"
            )
        if claimed_at is not None:
            self.logger.warning("Reclaiming stale refund", return_id=return_id, claimed_at=claimed_at.isoformat())

        return_request.refund_requested_at = now
        await session.flush()
        return return_request.version

    async def _record_refund_tx(
        self,
        session: AsyncSession,
        return_id: str,
        claimed_version: int,
        refund_status: RefundStatus,
        refund_error: Optional[str]
    ) -> ReturnRequest:
        return_request = await self._lock_return(session, return_id)
        if return_request.version != claimed_version or return_request.status != ReturnStatus.RECEIVED.value:
            raise ConflictError(
                code="REFUND_CLAIM_LOST",
                detail=f"Return request {return_id} changed while the refund was in flight"
            )

        return_request.status = ReturnStatus.REFUNDED.value
        return_request.refunded_at = utcnow()
        return_request.refund_status = refund_status.value
        return_request.refund_error = refund_error

        await session.flush()
        return return_request

    async def _call_refund_gateway(self, return_id: str):
        """调用退款网关，把所有结果转换为 (RefundStatus, error)"""
        try:
            outcome: RefundOutcome = await asyncio.wait_for(
                self.refund_gateway.refund(return_id),
                timeout=self.refund_timeout
            )
        except (asyncio.TimeoutError, GatewayTimeoutError) as e:
            detail = getattr(e, "detail", None) or f"Refund gateway did not answer within {self.refund_timeout}s"
            self.logger.warning("Refund outcome unknown", return_id=return_id, error=detail)
            return RefundStatus.PENDING, detail
        except FulfilFlowException as e:
            self.logger.warning("Refund gateway error", return_id=return_id, code=e.code, error=e.detail)
            return RefundStatus.FAILED, e.detail or e.title
        except Exception as e:
            self.logger.error("Refund gateway failed", return_id=return_id, exc_info=True)
            return RefundStatus.FAILED, str(e) or type(e).__name__

        if outcome.success:
            return RefundStatus.SUCCESS, None
        return RefundStatus.FAILED, outcome.reason or "Refund declined"

    async def _lock_return(self, session: AsyncSession, return_id: str) -> ReturnRequest:
        return_request = await self.get_by_id(session, ReturnRequest, return_id, for_update=True)
        if not return_request:
            raise NotFoundError(code="RETURN_NOT_FOUND", resource=f"Return request {return_id}")
        return return_request
