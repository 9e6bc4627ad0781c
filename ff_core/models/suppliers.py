"""
供应商与供应商履约单数据模型
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Text, Integer, Numeric, DateTime,
    CheckConstraint, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id, utcnow
from .enums import SupplierOrderStatus, enum_values


class Supplier(Base):
    """供应商"""
    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text)
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        CheckConstraint("commission_rate >= 0 AND commission_rate <= 100", name="ck_suppliers_commission_rate"),
        nullable=False,
        default=Decimal("15.00"),
        comment="平台佣金比例（百分比）"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )


class SupplierOrder(Base):
    """供应商履约单

    一条订单行对应一条履约单。金额在创建时确定，之后只有状态、运单号、备注会变化。
    永不删除。
    """
    __tablename__ = "supplier_orders"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)

    order_id: Mapped[str] = mapped_column(Text, ForeignKey("orders.id"), nullable=False)
    order_item_id: Mapped[str] = mapped_column(Text, ForeignKey("order_items.id"), nullable=False)
    product_id: Mapped[str] = mapped_column(Text, nullable=False)
    supplier_id: Mapped[str] = mapped_column(Text, ForeignKey("suppliers.id"), nullable=False)

    # 金额（必须使用 Decimal）
    quantity: Mapped[int] = mapped_column(
        Integer,
        CheckConstraint("quantity > 0", name="ck_supplier_orders_quantity"),
        nullable=False
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        CheckConstraint("unit_price >= 0", name="ck_supplier_orders_unit_price"),
        nullable=False
    )
    total_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        CheckConstraint("commission_rate >= 0 AND commission_rate <= 100", name="ck_supplier_orders_commission_rate"),
        nullable=False
    )
    commission: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, comment="平台佣金")
    supplier_revenue: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, comment="供应商收入")

    status: Mapped[str] = mapped_column(
        Text,
        CheckConstraint(
            "status IN (" + ",".join(f"'{v}'" for v in enum_values(SupplierOrderStatus)) + ")",
            name="ck_supplier_orders_status"
        ),
        nullable=False,
        default=SupplierOrderStatus.PENDING.value
    )
    tracking_number: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

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
    # 乐观锁版本号
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("order_item_id", name="uq_supplier_orders_order_item"),
        Index("ix_supplier_orders_supplier_created", "supplier_id", "created_at"),
        Index("ix_supplier_orders_order", "order_id"),
    )
