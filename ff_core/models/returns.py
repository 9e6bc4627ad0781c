"""
退货申请数据模型
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Text, Integer, DateTime,
    CheckConstraint, ForeignKey, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, new_id, utcnow
from .enums import ReturnReason, ReturnStatus, RefundStatus, enum_values
from .orders import Order, OrderItem


def _in_check(column: str, enum_cls) -> str:
    return f"{column} IN (" + ",".join(f"'{v}'" for v in enum_values(enum_cls)) + ")"


class ReturnRequest(Base):
    """退货申请

    同一订单合并批准的退货共享同一个运单号（冗余存储在每一行上）。
    """
    __tablename__ = "return_requests"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)

    order_id: Mapped[str] = mapped_column(Text, ForeignKey("orders.id"), nullable=False)
    order_item_id: Mapped[str] = mapped_column(Text, ForeignKey("order_items.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)

    reason: Mapped[str] = mapped_column(
        Text,
        CheckConstraint(_in_check("reason", ReturnReason), name="ck_return_requests_reason"),
        nullable=False
    )
    details: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(
        Text,
        CheckConstraint(_in_check("status", ReturnStatus), name="ck_return_requests_status"),
        nullable=False,
        default=ReturnStatus.PENDING.value
    )

    # 退款结果（尝试退款前为空）
    refund_status: Mapped[Optional[str]] = mapped_column(
        Text,
        CheckConstraint(
            "refund_status IS NULL OR " + _in_check("refund_status", RefundStatus),
            name="ck_return_requests_refund_status"
        )
    )
    refund_error: Mapped[Optional[str]] = mapped_column(Text)
    # 退款认领时间：网关调用进行中（状态仍为 RECEIVED）
    refund_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # 合并退货运单
    tracking_number: Mapped[Optional[str]] = mapped_column(Text)
    carrier: Mapped[Optional[str]] = mapped_column(Text)

    # 通知
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notification_error: Mapped[Optional[str]] = mapped_column(Text)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # 关系
    order: Mapped[Order] = relationship(Order)
    order_item: Mapped[OrderItem] = relationship(OrderItem)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_return_requests_order_status", "order_id", "status"),
        Index("ix_return_requests_tracking", "tracking_number"),
    )
