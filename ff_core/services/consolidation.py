"""
退货合并批准服务

同一订单的多条退货申请合并为一个包裹：一张运单、一个运单号、一封附带可打印退货面单的通知邮件。
- 按订单分组，每组一个事务（组内全部批准或全部保持 PENDING）
- 组之间互不影响，一组失败不影响其他组
- 通知失败不回滚批准，只记录并上报
"""
import asyncio
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ff_core.database import DatabaseManager
from ff_core.event_bus import EventBus
from ff_core.gateways.notifications import (
    NotificationDispatcher, ConsolidatedNotification, NotificationItem
)
from ff_core.models import ReturnRequest, Order
from ff_core.models.base import utcnow
from ff_core.models.enums import ReturnStatus
from ff_core.utils.errors import (
    FulfilFlowException, ConflictError, NotFoundError,
    ValidationError, UnknownCarrierError, problem_payload
)
from ff_core.utils.logger import LogContext
from .base import BaseService, RepositoryMixin
from .return_labels import (
    LabelLine, ReturnAddress, ReturnLabelDocument, build_label_attachment
)
from .shipping_labels import (
    CARRIERS, ShippingLabel, ShippingLabelGenerator, select_package_type
)

DEFAULT_RETURN_ADDRESS = ReturnAddress(
    name="FulfilFlow Returns",
    address_line1="Strada Depozitului 1",
    city="Bucuresti",
    country="Romania"
)

SKIP_NOT_FOUND = "NOT_FOUND"
SKIP_NOT_PENDING = "NOT_PENDING"


@dataclass
class FailedGroup:
    order_id: str
    code: str
    reason: str
    return_ids: List[str]


@dataclass
class ApprovedGroup:
    order_id: str
    order_number: str
    return_ids: List[str]
    tracking_number: str
    carrier: str
    package_type: str
    cost: str
    notification_sent: bool
    notification_error: Optional[str] = None


@dataclass
class ConsolidationSummary:
    """合并批准结果汇总"""
    approved_ids: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    failed_groups: List[FailedGroup] = field(default_factory=list)
    groups: List[ApprovedGroup] = field(default_factory=list)

    @property
    def approved_count(self) -> int:
        return len(self.approved_ids)

    @property
    def skipped_ids(self) -> List[str]:
        return list(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved_count": self.approved_count,
            "approved_ids": list(self.approved_ids),
            "skipped_ids": self.skipped_ids,
            "skipped": dict(self.skipped),
            "failed_groups": [asdict(g) for g in self.failed_groups],
            "groups": [asdict(g) for g in self.groups],
        }


class ReturnsConsolidator(BaseService, RepositoryMixin):
    """退货合并批准"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        label_generator: ShippingLabelGenerator,
        notification_dispatcher: Optional[NotificationDispatcher] = None,
        event_bus: Optional[EventBus] = None,
        default_carrier: str = "posta",
        default_item_weight_kg: Decimal = Decimal("1"),
        group_concurrency: int = 4,
        notification_timeout: float = 10.0,
        return_address: Optional[ReturnAddress] = None
    ):
        super().__init__(db_manager, event_bus)
        self.label_generator = label_generator
        self.notification_dispatcher = notification_dispatcher
        self.default_carrier = default_carrier
        self.default_item_weight_kg = Decimal(str(default_item_weight_kg))
        self.group_concurrency = group_concurrency
        self.notification_timeout = notification_timeout
        self.return_address = return_address or DEFAULT_RETURN_ADDRESS

    async def bulk_approve(self, return_ids: List[str], carrier: Optional[str] = None) -> ConsolidationSummary:
        """
        批量批准退货申请

        Args:
            return_ids: 退货申请ID列表（重复ID自动去重）
            carrier: 承运商，默认 FF__DEFAULT_RETURN_CARRIER

        Returns:
            ConsolidationSummary（批准、跳过、失败组、每组运单与通知结果）
        """
        if not return_ids:
            raise ValidationError(code="EMPTY_RETURN_IDS", detail="Provide at least one return request id")

        carrier = carrier or self.default_carrier
        if carrier not in CARRIERS:
            raise UnknownCarrierError(carrier)

        unique_ids = list(dict.fromkeys(return_ids))
        summary = ConsolidationSummary()

        loaded = await self.execute_with_session(self._load_returns, unique_ids)

        groups: Dict[str, List[ReturnRequest]] = {}
        for return_id in unique_ids:
            return_request = loaded.get(return_id)
            if return_request is None:
                summary.skipped[return_id] = SKIP_NOT_FOUND
            elif return_request.status != ReturnStatus.PENDING.value:
                summary.skipped[return_id] = SKIP_NOT_PENDING
            else:
                groups.setdefault(return_request.order_id, []).append(return_request)

        self.logger.info(
            "Bulk approving returns",
            requested=len(unique_ids),
            groups=len(groups),
            skipped=len(summary.skipped),
            carrier=carrier
        )

        semaphore = asyncio.Semaphore(self.group_concurrency)

        async def _bounded(order_id: str, group: List[ReturnRequest]):
            async with semaphore:
                return await self._process_group(order_id, group, carrier)

        results = await asyncio.gather(*(
            _bounded(order_id, group) for order_id, group in groups.items()
        ))

        for result in results:
            if isinstance(result, FailedGroup):
                summary.failed_groups.append(result)
            else:
                summary.groups.append(result)
                summary.approved_ids.extend(result.return_ids)

        self.logger.info(
            "Bulk approval finished",
            approved=summary.approved_count,
            skipped=len(summary.skipped),
            failed_groups=len(summary.failed_groups)
        )
        return summary

    async def _load_returns(self, session: AsyncSession, return_ids: List[str]) -> Dict[str, ReturnRequest]:
        rows = await self.get_many_by_ids(
            session, ReturnRequest, return_ids,
            options=[selectinload(ReturnRequest.order), selectinload(ReturnRequest.order_item)]
        )
        return {row.id: row for row in rows}

    async def _process_group(self, order_id: str, group: List[ReturnRequest], carrier: str):
        """处理一个订单的退货：运单 -> 事务批准 -> 通知"""
        return_ids = [r.id for r in group]
        order = group[0].order

        with LogContext(order_id=order_id):
            try:
                label = await self._generate_group_label(order, group, carrier)
                await self.execute_with_transaction(self._approve_group_tx, return_ids, label)
            except FulfilFlowException as e:
                self.logger.warning(
                    "Return group not approved",
                    order_id=order_id,
                    return_ids=return_ids,
                    code=e.code,
                    reason=e.detail
                )
                return FailedGroup(order_id=order_id, return_ids=return_ids, **problem_payload(e))
            except Exception as e:
                self.logger.error("Return group failed unexpectedly", order_id=order_id, exc_info=True)
                return FailedGroup(
                    order_id=order_id,
                    code="INTERNAL_ERROR",
                    reason=str(e) or type(e).__name__,
                    return_ids=return_ids
                )

            self.logger.info(
                "Return group approved",
                order_id=order_id,
                return_ids=return_ids,
                tracking_number=label.tracking_number,
                package_type=label.package_type
            )
            await self.publish_event("ff.returns.approved", {
                "order_id": order_id,
                "order_number": order.order_number,
                "return_ids": return_ids,
                "tracking_number": label.tracking_number,
                "carrier": label.carrier,
            })

            notification_error = await self._notify(order, group, label.tracking_number, label.carrier)

            return ApprovedGroup(
                order_id=order_id,
                order_number=order.order_number,
                return_ids=return_ids,
                tracking_number=label.tracking_number,
                carrier=label.carrier,
                package_type=label.package_type,
                cost=str(label.cost),
                notification_sent=notification_error is None,
                notification_error=notification_error,
            )

    async def _generate_group_label(self, order: Order, group: List[ReturnRequest], carrier: str) -> ShippingLabel:
        weight = sum(
            (self._item_weight(r) * r.order_item.quantity for r in group),
            Decimal("0")
        )
        package_type = select_package_type(weight)
        return await self.label_generator.generate_label(
            carrier=carrier,
            package_type=package_type,
            weight_kg=weight,
            destination=order.shipping_address(),
            reference=f"RET-{order.order_number}"
        )

    def _item_weight(self, return_request: ReturnRequest) -> Decimal:
        weight = return_request.order_item.weight_kg
        return weight if weight is not None else self.default_item_weight_kg

    async def _approve_group_tx(self, session: AsyncSession, return_ids: List[str], label: ShippingLabel) -> None:
        rows = await self.get_many_by_ids(session, ReturnRequest, return_ids, for_update=True)
        if len(rows) != len(return_ids) or any(r.status != ReturnStatus.PENDING.value for r in rows):
            raise ConflictError(
                code="CONCURRENT_UPDATE",
                detail="One or more return requests in this order are no longer pending"
            )

        approved_at = utcnow()
        for row in rows:
            row.status = ReturnStatus.APPROVED.value
            row.tracking_number = label.tracking_number
            row.carrier = label.carrier
            row.approved_at = approved_at
            row.notification_error = None

        await session.flush()

    async def _notify(
        self,
        order: Order,
        group: List[ReturnRequest],
        tracking_number: str,
        carrier: str
    ) -> Optional[str]:
        """发送合并通知，返回失败原因（成功返回 None）"""
        return_ids = [r.id for r in group]
        error = await self._dispatch(self._build_notification(order, group, tracking_number, carrier))

        try:
            await self.execute_with_transaction(self._record_notification_tx, return_ids, error)
        except FulfilFlowException as e:
            self.logger.warning(
                "Failed to record notification result",
                order_id=order.id,
                code=e.code,
                reason=e.detail
            )

        if error is not None:
            await self.publish_event("ff.returns.notification_failed", {
                "order_id": order.id,
                "order_number": order.order_number,
                "tracking_number": tracking_number,
                "return_ids": return_ids,
                "error": error,
            })
        return error

    async def _dispatch(self, notification: ConsolidatedNotification) -> Optional[str]:
        if self.notification_dispatcher is None:
            return "No notification dispatcher configured"

        try:
            await asyncio.wait_for(
                self.notification_dispatcher.send_consolidated(notification),
                timeout=self.notification_timeout
            )
        except asyncio.TimeoutError:
            error = f"Notification dispatch timed out after {self.notification_timeout}s"
        except FulfilFlowException as e:
            error = e.detail or e.title
        except Exception as e:
            self.logger.error("Notification dispatcher failed", exc_info=True)
            error = str(e) or type(e).__name__
        else:
            return None

        self.logger.warning(
            "Return notification failed",
            order_number=notification.order_number,
            tracking_number=notification.tracking_number,
            error=error
        )
        return error

    async def _record_notification_tx(
        self,
        session: AsyncSession,
        return_ids: List[str],
        error: Optional[str]
    ) -> None:
        rows = await self.get_many_by_ids(session, ReturnRequest, return_ids, for_update=True)
        now = utcnow()
        for row in rows:
            if error is None:
                row.notified_at = now
                row.notification_error = None
            else:
                row.notification_error = error
        await session.flush()

    def _build_notification(
        self,
        order: Order,
        group: List[ReturnRequest],
        tracking_number: str,
        carrier: str
    ) -> ConsolidatedNotification:
        carrier_info = CARRIERS.get(carrier)
        carrier_name = carrier_info.name if carrier_info else carrier
        label = build_label_attachment(ReturnLabelDocument(
            reference=f"RET-{order.order_number}",
            order_number=order.order_number,
            tracking_number=tracking_number,
            carrier=carrier_name,
            return_address=self.return_address,
            sender_name=order.customer_name,
            sender_email=order.customer_email,
            sender_address=order.shipping_address(),
            return_ids=[r.id for r in group],
            items=[
                LabelLine(
                    name=r.order_item.name,
                    sku=r.order_item.sku,
                    quantity=r.order_item.quantity,
                    reason=r.reason
                )
                for r in group
            ],
            issued_at=group[0].approved_at or utcnow(),
        ))
        return ConsolidatedNotification(
            recipient_email=order.customer_email,
            recipient_name=order.customer_name,
            order_number=order.order_number,
            order_date=order.created_at,
            tracking_number=tracking_number,
            carrier=carrier_name,
            tracking_url=f"{carrier_info.tracking_url}?tracking={tracking_number}" if carrier_info else None,
            items=[
                NotificationItem(
                    name=r.order_item.name,
                    quantity=r.order_item.quantity,
                    reason=r.reason
                )
                for r in group
            ],
            label=label,
        )

    async def resend_notification(self, order_id: str, only_failed: bool = False) -> Dict[str, Any]:
        """
        手动重发某订单的合并退货通知

        按运单号分组，每个运单号发送一封。成功时清除 notification_error。

        Args:
            order_id: 订单ID
            only_failed: 只重发之前发送失败的分组
        """
        async def _load(session: AsyncSession) -> List[ReturnRequest]:
            stmt = (
                select(ReturnRequest)
                .where(
                    ReturnRequest.order_id == order_id,
                    ReturnRequest.status == ReturnStatus.APPROVED.value,
                    ReturnRequest.tracking_number.is_not(None)
                )
                .options(selectinload(ReturnRequest.order), selectinload(ReturnRequest.order_item))
                .order_by(ReturnRequest.created_at, ReturnRequest.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

        approved = await self.execute_with_session(_load)
        if not approved:
            raise NotFoundError(code="APPROVED_RETURNS_NOT_FOUND", resource=f"Approved returns for order {order_id}")

        by_tracking: Dict[str, List[ReturnRequest]] = {}
        for return_request in approved:
            by_tracking.setdefault(return_request.tracking_number, []).append(return_request)

        results = []
        with LogContext(order_id=order_id):
            for tracking_number, group in by_tracking.items():
                if only_failed and not any(r.notification_error for r in group):
                    continue
                error = await self._notify(group[0].order, group, tracking_number, group[0].carrier)
                results.append({
                    "tracking_number": tracking_number,
                    "return_ids": [r.id for r in group],
                    "notification_sent": error is None,
                    "notification_error": error,
                })

        self.logger.info(
            "Return notifications resent",
            order_id=order_id,
            sent=sum(1 for r in results if r["notification_sent"]),
            failed=sum(1 for r in results if not r["notification_sent"])
        )
        return {"order_id": order_id, "notifications": results}
