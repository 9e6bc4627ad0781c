"""
供应商履约服务
- 订单支付后按订单行拆分供应商履约单
- 履约状态机（行锁 + 乐观锁版本号）
- 供应商收入汇总
"""
from collections import Counter
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ff_core.database import DatabaseManager
from ff_core.event_bus import EventBus
from ff_core.models import Order, Supplier, SupplierOrder
from ff_core.models.base import utcnow
from ff_core.models.enums import SupplierOrderStatus
from ff_core.utils.errors import (
    NotFoundError, ValidationError, MissingTrackingNumberError
)
from .base import BaseService, RepositoryMixin
from .commission import CommissionCalculator
from .status_flow import SUPPLIER_ORDER_FLOW, REVENUE_STATUSES

REVENUE_PERIODS = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}


class FulfillmentService(BaseService, RepositoryMixin):
    """供应商履约服务"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        event_bus: Optional[EventBus] = None,
        commission_calculator: Optional[CommissionCalculator] = None
    ):
        super().__init__(db_manager, event_bus)
        self.commission_calculator = commission_calculator or CommissionCalculator()

    async def get_supplier_order(self, supplier_order_id: str) -> SupplierOrder:
        """获取供应商履约单"""
        async def _get(session: AsyncSession) -> SupplierOrder:
            supplier_order = await self.get_by_id(session, SupplierOrder, supplier_order_id)
            if not supplier_order:
                raise NotFoundError(code="SUPPLIER_ORDER_NOT_FOUND", resource=f"Supplier order {supplier_order_id}")
            return supplier_order

        return await self.execute_with_session(_get)

    async def advance_supplier_order(
        self,
        supplier_order_id: str,
        target_status: str,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None
    ) -> SupplierOrder:
        """
        推进供应商履约单状态

        校验与写入在同一个事务中完成，行读取使用 SELECT ... FOR UPDATE。

        Raises:
            NotFoundError: 履约单不存在
            ValidationError: 未知状态
            IllegalTransitionError: 状态机不允许
            MissingTrackingNumberError: 发货时缺少运单号
            ConflictError: 并发写入（版本号冲突）
        """
        target = SUPPLIER_ORDER_FLOW.parse(target_status)
        tracking_number = tracking_number.strip() if tracking_number else None

        supplier_order, previous_status = await self.execute_with_transaction(
            self._advance_tx, supplier_order_id, target, tracking_number, notes
        )

        self.logger.info(
            "Supplier order status changed",
            supplier_order_id=supplier_order.id,
            order_id=supplier_order.order_id,
            from_status=previous_status,
            to_status=supplier_order.status,
            tracking_number=supplier_order.tracking_number
        )

        await self.publish_event("ff.supplier_order.status_changed", {
            "supplier_order_id": supplier_order.id,
            "order_id": supplier_order.order_id,
            "supplier_id": supplier_order.supplier_id,
            "from_status": previous_status,
            "to_status": supplier_order.status,
            "tracking_number": supplier_order.tracking_number,
        })

        return supplier_order

    async def _advance_tx(
        self,
        session: AsyncSession,
        supplier_order_id: str,
        target: SupplierOrderStatus,
        tracking_number: Optional[str],
        notes: Optional[str]
    ):
        supplier_order = await self.get_by_id(session, SupplierOrder, supplier_order_id, for_update=True)
        if not supplier_order:
            raise NotFoundError(code="SUPPLIER_ORDER_NOT_FOUND", resource=f"Supplier order {supplier_order_id}")

        previous_status = supplier_order.status
        SUPPLIER_ORDER_FLOW.validate(previous_status, target)

        if target == SupplierOrderStatus.SHIPPED:
            if not tracking_number:
                raise MissingTrackingNumberError()
            # shipped_at 只记录一次
            if supplier_order.shipped_at is None:
                supplier_order.shipped_at = utcnow()
            supplier_order.tracking_number = tracking_number
        elif tracking_number:
            # 运单号只在发货时写入
            self.logger.warning(
                "Tracking number ignored outside shipment",
                supplier_order_id=supplier_order.id,
                to_status=target.value,
                kept_tracking_number=supplier_order.tracking_number
            )

        supplier_order.status = target.value
        if notes is not None:
            supplier_order.notes = notes

        await session.flush()
        return supplier_order, previous_status

    async def split_order(self, order_id: str) -> List[SupplierOrder]:
        """
        订单支付确认后，为每个供应商订单行创建一条 PENDING 履约单

        幂等：已有履约单的订单行不会重复创建。平台自营的订单行（无供应商）跳过。
        返回该订单的全部供应商履约单。
        """
        supplier_orders, created = await self.execute_with_transaction(self._split_order_tx, order_id)

        self.logger.info(
            "Order split into supplier orders",
            order_id=order_id,
            created=len(created),
            total=len(supplier_orders)
        )

        for supplier_order in created:
            await self.publish_event("ff.supplier_order.created", {
                "supplier_order_id": supplier_order.id,
                "order_id": supplier_order.order_id,
                "supplier_id": supplier_order.supplier_id,
                "total_price": str(supplier_order.total_price),
            })

        return supplier_orders

    async def _split_order_tx(self, session: AsyncSession, order_id: str):
        order = await self.get_by_id(
            session, Order, order_id,
            for_update=True,
            options=[selectinload(Order.items)]
        )
        if not order:
            raise NotFoundError(code="ORDER_NOT_FOUND", resource=f"Order {order_id}")

        result = await session.execute(
            select(SupplierOrder).where(SupplierOrder.order_id == order_id)
        )
        existing = list(result.scalars().all())
        covered_items = {so.order_item_id for so in existing}

        pending_items = [
            item for item in order.items
            if item.supplier_id and item.id not in covered_items
        ]

        supplier_ids = {item.supplier_id for item in pending_items}
        suppliers: Dict[str, Supplier] = {}
        if supplier_ids:
            result = await session.execute(select(Supplier).where(Supplier.id.in_(supplier_ids)))
            suppliers = {s.id: s for s in result.scalars().all()}

        created = []
        for item in pending_items:
            supplier = suppliers.get(item.supplier_id)
            if supplier is None:
                raise NotFoundError(code="SUPPLIER_NOT_FOUND", resource=f"Supplier {item.supplier_id}")

            breakdown = self.commission_calculator.calculate(
                item.unit_price, item.quantity, supplier.commission_rate
            )
            supplier_order = SupplierOrder(
                order_id=order.id,
                order_item_id=item.id,
                product_id=item.product_id,
                supplier_id=supplier.id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=breakdown.total_price,
                commission_rate=supplier.commission_rate,
                commission=breakdown.commission,
                supplier_revenue=breakdown.supplier_revenue,
                status=SupplierOrderStatus.PENDING.value,
            )
            session.add(supplier_order)
            created.append(supplier_order)

        await session.flush()
        return existing + created, created

    async def supplier_revenue_summary(self, supplier_id: str, period: str = "30d") -> Dict[str, Any]:
        """
        供应商收入汇总

        Args:
            supplier_id: 供应商ID
            period: 统计窗口 7d / 30d / 90d / 1y

        Returns:
            {
                "supplier_id", "period", "since",
                "total_revenue", "commission_earned", "total_units",
                "order_count", "average_order_value", "by_status"
            }
        """
        window = REVENUE_PERIODS.get(period)
        if window is None:
            raise ValidationError(
                code="INVALID_PERIOD",
                detail=f"Unknown period {period!r}; expected one of {', '.join(REVENUE_PERIODS)}"
            )
        since = utcnow() - window

        async def _summary(session: AsyncSession) -> Dict[str, Any]:
            supplier = await self.get_by_id(session, Supplier, supplier_id)
            if not supplier:
                raise NotFoundError(code="SUPPLIER_NOT_FOUND", resource=f"Supplier {supplier_id}")

            stmt = select(SupplierOrder).where(
                SupplierOrder.supplier_id == supplier_id,
                SupplierOrder.created_at >= since,
                SupplierOrder.status.in_([s.value for s in REVENUE_STATUSES])
            )
            result = await session.execute(stmt)
            return self._summarize(list(result.scalars().all()))

        summary = await self.execute_with_session(_summary)
        summary.update({"supplier_id": supplier_id, "period": period, "since": since.isoformat()})
        return summary

    @staticmethod
    def _summarize(supplier_orders: List[SupplierOrder]) -> Dict[str, Any]:
        total_revenue = sum((so.supplier_revenue for so in supplier_orders), Decimal("0"))
        commission_earned = sum((so.commission for so in supplier_orders), Decimal("0"))
        total_units = sum(so.quantity for so in supplier_orders)

        average = Decimal("0")
        if total_units:
            average = total_revenue / total_units

        return {
            "total_revenue": total_revenue.quantize(Decimal("0.01"), ROUND_HALF_UP),
            "commission_earned": commission_earned.quantize(Decimal("0.01"), ROUND_HALF_UP),
            "total_units": total_units,
            "order_count": len(supplier_orders),
            "average_order_value": average.quantize(Decimal("0.01"), ROUND_HALF_UP),
            "by_status": dict(Counter(so.status for so in supplier_orders)),
        }
