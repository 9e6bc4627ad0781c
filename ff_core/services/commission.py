"""
佣金计算器 - 拆分平台佣金与供应商收入

金额一律使用 Decimal，四舍五入（ROUND_HALF_UP）到分。
supplier_revenue 由 total_price - commission 得出，保证两者之和恒等于总价。
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from ff_core.utils.errors import ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CommissionBreakdown:
    total_price: Decimal
    commission: Decimal
    supplier_revenue: Decimal

    def to_dict(self) -> dict:
        return {
            "total_price": str(self.total_price),
            "commission": str(self.commission),
            "supplier_revenue": str(self.supplier_revenue),
        }


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(code="INVALID_INPUT", detail=f"{field} must be numeric")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(code="INVALID_INPUT", detail=f"{field} must be numeric, got {value!r}")
    if not result.is_finite():
        raise ValidationError(code="INVALID_INPUT", detail=f"{field} must be a finite number")
    return result


class CommissionCalculator:
    """佣金计算器（纯函数，无状态）"""

    def calculate(self, unit_price: Any, quantity: Any, commission_rate: Any) -> CommissionBreakdown:
        """
        计算佣金拆分

        Args:
            unit_price: 单价（>= 0）
            quantity: 数量（正整数）
            commission_rate: 佣金比例，百分比 [0, 100]

        Returns:
            CommissionBreakdown
        """
        price = _to_decimal(unit_price, "unit_price")
        qty = _to_decimal(quantity, "quantity")
        rate = _to_decimal(commission_rate, "commission_rate")

        if qty <= 0 or qty != qty.to_integral_value():
            raise ValidationError(code="INVALID_INPUT", detail="quantity must be a positive integer")
        if price < 0:
            raise ValidationError(code="INVALID_INPUT", detail="unit_price must not be negative")
        if rate < 0 or rate > HUNDRED:
            raise ValidationError(code="INVALID_INPUT", detail="commission_rate must be between 0 and 100")

        total_price = (price * qty).quantize(CENT, ROUND_HALF_UP)
        commission = (total_price * rate / HUNDRED).quantize(CENT, ROUND_HALF_UP)

        return CommissionBreakdown(
            total_price=total_price,
            commission=commission,
            supplier_revenue=total_price - commission,
        )
