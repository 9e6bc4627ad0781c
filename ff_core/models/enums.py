"""
枚举类型定义
"""

from enum import Enum


class SupplierOrderStatus(str, Enum):
    """供应商履约单状态"""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PRODUCTION = "IN_PRODUCTION"
    READY_TO_SHIP = "READY_TO_SHIP"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ReturnStatus(str, Enum):
    """退货申请状态"""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RECEIVED = "RECEIVED"
    REFUNDED = "REFUNDED"


class ReturnReason(str, Enum):
    """退货原因（封闭集合）"""

    DOES_NOT_MEET_EXPECTATIONS = "DOES_NOT_MEET_EXPECTATIONS"
    DAMAGED_OR_DEFECTIVE = "DAMAGED_OR_DEFECTIVE"
    WRONG_ITEM_SHIPPED = "WRONG_ITEM_SHIPPED"
    CHANGED_MIND = "CHANGED_MIND"
    ORDERED_WRONG_PRODUCT = "ORDERED_WRONG_PRODUCT"
    OTHER = "OTHER"


class RefundStatus(str, Enum):
    """退款结果"""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"  # 网关超时，结果未知


class Carrier(str, Enum):
    """承运商枚举"""

    FAN = "fan"
    URGENT = "urgent"
    SAMEDAY = "sameday"
    GLS = "gls"
    DPD = "dpd"
    POSTA = "posta"


class PackageType(str, Enum):
    """包裹类型枚举（按重量上限从小到大）"""

    ENVELOPE = "envelope"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    HEAVY = "heavy"


class LabelSource(str, Enum):
    """运单号来源"""

    CARRIER = "carrier"  # 承运商网关签发
    SYNTHESIZED = "synthesized"  # 本地生成（离线/兜底）


def enum_values(enum_cls) -> list[str]:
    """枚举值列表（用于 CHECK 约束和校验提示）"""
    return [member.value for member in enum_cls]
