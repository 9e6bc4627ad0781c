"""
测试用的假网关、事件总线和数据构造器
"""
import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ff_core.database import DatabaseManager
from ff_core.gateways import (
    CarrierGateway, CarrierQuote,
    RefundGateway, RefundOutcome,
    NotificationDispatcher, ConsolidatedNotification,
)
from ff_core.models import Order, OrderItem, Supplier, ReturnRequest
from ff_core.utils.errors import DispatchError


class FakeCarrierGateway(CarrierGateway):
    """承运商网关假实现"""

    def __init__(self, quote: Optional[CarrierQuote] = None, delay: float = 0.0):
        self.quote = quote or CarrierQuote()
        self.delay = delay
        self.fail_references: Dict[str, Exception] = {}
        self.before_reply = None  # 可选回调：模拟网关调用期间的并发写入
        self.calls: List[Dict[str, Any]] = []

    async def request_tracking(self, carrier, package_type, weight_kg, destination, reference):
        self.calls.append({
            "carrier": carrier,
            "package_type": package_type,
            "weight_kg": weight_kg,
            "destination": destination,
            "reference": reference,
        })
        if self.before_reply is not None:
            await self.before_reply(reference)
        if self.delay:
            await asyncio.sleep(self.delay)
        if reference in self.fail_references:
            raise self.fail_references[reference]
        return self.quote


class FakeRefundGateway(RefundGateway):
    """退款网关假实现"""

    def __init__(self, outcome: Optional[RefundOutcome] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.outcome = outcome or RefundOutcome(success=True)
        self.error = error
        self.delay = delay
        self.during_refund = None  # 可选回调：模拟退款进行中的并发写入
        self.calls: List[str] = []

    async def refund(self, return_request_id: str) -> RefundOutcome:
        self.calls.append(return_request_id)
        if self.during_refund is not None:
            await self.during_refund(return_request_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.outcome


class FakeNotificationDispatcher(NotificationDispatcher):
    """通知网关假实现"""

    def __init__(self):
        self.sent: List[ConsolidatedNotification] = []
        self.fail_with: Optional[str] = None

    async def send_consolidated(self, notification: ConsolidatedNotification) -> None:
        if self.fail_with:
            raise DispatchError(detail=self.fail_with)
        self.sent.append(notification)


class FakeEventBus:
    """记录发布的事件"""

    def __init__(self):
        self.events: List[tuple] = []

    async def publish(self, topic: str, payload: Dict[str, Any], key: Optional[str] = None) -> str:
        self.events.append((topic, payload))
        return str(len(self.events))

    async def shutdown(self) -> None:
        return None

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.events]


class Seeder:
    """测试数据构造器"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self._counter = 0

    async def supplier(self, commission_rate: str = "15") -> Supplier:
        async with self.db_manager.get_transaction() as session:
            supplier = Supplier(name="Acme Toys", email="supplier@example.com", commission_rate=Decimal(commission_rate))
            session.add(supplier)
        return supplier

    async def order(self, items: List[Dict[str, Any]], order_number: Optional[str] = None) -> Order:
        """创建订单及订单行

        items: [{"name", "quantity", "unit_price", "weight_kg", "supplier_id"}]
        """
        self._counter += 1
        async with self.db_manager.get_transaction() as session:
            order = Order(
                order_number=order_number or f"TT-{1000 + self._counter}",
                user_id="user-1",
                customer_name="Ana Popescu",
                customer_email="ana@example.com",
                ship_full_name="Ana Popescu",
                ship_address_line1="Strada Lunga 10",
                ship_city="Cluj-Napoca",
                ship_state="Cluj",
                ship_postal_code="400000",
                ship_country="RO",
            )
            session.add(order)
            await session.flush()
            for index, item_data in enumerate(items):
                session.add(OrderItem(
                    order_id=order.id,
                    product_id=item_data.get("product_id", f"prod-{index}"),
                    supplier_id=item_data.get("supplier_id"),
                    name=item_data.get("name", f"Item {index}"),
                    sku=item_data.get("sku"),
                    quantity=item_data.get("quantity", 1),
                    unit_price=Decimal(str(item_data.get("unit_price", "10.00"))),
                    weight_kg=Decimal(str(item_data["weight_kg"])) if item_data.get("weight_kg") is not None else None,
                ))

        async with self.db_manager.get_session() as session:
            result = await session.execute(
                select(Order).where(Order.id == order.id).options(selectinload(Order.items))
            )
            return result.scalar_one()

    async def return_request(
        self,
        order: Order,
        item: OrderItem,
        reason: str = "CHANGED_MIND",
        status: str = "PENDING"
    ) -> ReturnRequest:
        async with self.db_manager.get_transaction() as session:
            return_request = ReturnRequest(
                order_id=order.id,
                order_item_id=item.id,
                user_id=order.user_id,
                reason=reason,
                status=status,
            )
            session.add(return_request)
        return return_request

