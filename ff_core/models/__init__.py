"""
FulfilFlow 数据模型包
"""
from .base import Base
from .orders import Order, OrderItem
from .suppliers import Supplier, SupplierOrder
from .returns import ReturnRequest

__all__ = [
    "Base",
    "Order",
    "OrderItem",
    "Supplier",
    "SupplierOrder",
    "ReturnRequest",
]
