"""
客户订单相关数据模型（只读参考数据）
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    Text, Integer, Numeric, DateTime,
    CheckConstraint, ForeignKey, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, new_id, utcnow


class Order(Base):
    """客户订单表"""
    __tablename__ = "orders"

    # 主键
    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)

    order_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True, comment="订单编号")
    user_id: Mapped[str] = mapped_column(Text, nullable=False, comment="下单用户ID")

    # 客户信息 - PII 数据
    customer_name: Mapped[str] = mapped_column(Text, nullable=False, comment="客户姓名")
    customer_email: Mapped[str] = mapped_column(Text, nullable=False, comment="客户邮箱")

    # 收货地址
    ship_full_name: Mapped[str] = mapped_column(Text, nullable=False, comment="收件人")
    ship_address_line1: Mapped[str] = mapped_column(Text, nullable=False, comment="地址第一行")
    ship_address_line2: Mapped[Optional[str]] = mapped_column(Text, comment="地址第二行")
    ship_city: Mapped[str] = mapped_column(Text, nullable=False, comment="城市")
    ship_state: Mapped[Optional[str]] = mapped_column(Text, comment="县/州")
    ship_postal_code: Mapped[str] = mapped_column(Text, nullable=False, comment="邮编")
    ship_country: Mapped[str] = mapped_column(Text, nullable=False, default="RO", comment="国家")
    ship_phone: Mapped[Optional[str]] = mapped_column(Text, comment="收件人电话")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )

    # 关系
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id"
    )

    def shipping_address(self) -> dict:
        """收货地址（作为退货运单的目的地）"""
        return {
            "full_name": self.ship_full_name,
            "address_line1": self.ship_address_line1,
            "address_line2": self.ship_address_line2,
            "city": self.ship_city,
            "state": self.ship_state,
            "postal_code": self.ship_postal_code,
            "country": self.ship_country,
            "phone": self.ship_phone,
        }


class OrderItem(Base):
    """订单行"""
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False
    )
    product_id: Mapped[str] = mapped_column(Text, nullable=False, comment="商品ID")
    # 平台自营商品没有供应商
    supplier_id: Mapped[Optional[str]] = mapped_column(
        Text,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        comment="供应商ID"
    )

    name: Mapped[str] = mapped_column(Text, nullable=False, comment="商品名称")
    sku: Mapped[Optional[str]] = mapped_column(Text, comment="SKU")
    quantity: Mapped[int] = mapped_column(
        Integer,
        CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        nullable=False
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price"),
        nullable=False
    )
    # 为空时按 FF__DEFAULT_ITEM_WEIGHT_KG 计算
    weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3), comment="单件重量（千克）")

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
    )
