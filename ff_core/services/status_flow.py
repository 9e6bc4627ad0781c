"""
状态流转表

供应商履约单与退货申请的合法状态变更集中定义在这里，服务层只做查表。
"""
from typing import Dict, FrozenSet, Type
from enum import Enum

from ff_core.models.enums import SupplierOrderStatus, ReturnStatus
from ff_core.utils.errors import ValidationError, IllegalTransitionError


class StatusFlow:
    """状态机：当前状态 -> 允许的目标状态集合"""

    def __init__(self, entity: str, status_enum: Type[Enum], transitions: Dict[Enum, FrozenSet[Enum]]):
        missing = set(status_enum) - set(transitions)
        if missing:
            raise ValueError(f"{entity} flow has no entry for {sorted(m.value for m in missing)}")
        self.entity = entity
        self.status_enum = status_enum
        self.transitions = transitions

    def parse(self, value) -> Enum:
        """解析状态字符串，未知值为非法输入"""
        if isinstance(value, self.status_enum):
            return value
        try:
            return self.status_enum(value)
        except ValueError:
            allowed = ", ".join(s.value for s in self.status_enum)
            raise ValidationError(
                code="INVALID_STATUS",
                detail=f"Unknown {self.entity} status {value!r}; expected one of {allowed}"
            )

    def allowed_targets(self, current) -> FrozenSet[Enum]:
        return self.transitions[self.parse(current)]

    def can_transition(self, current, target) -> bool:
        return self.parse(target) in self.allowed_targets(current)

    def is_terminal(self, status) -> bool:
        return not self.allowed_targets(status)

    def validate(self, current, target) -> Enum:
        """校验状态变更，返回目标状态枚举"""
        current_status = self.parse(current)
        target_status = self.parse(target)
        if target_status not in self.transitions[current_status]:
            raise IllegalTransitionError(
                entity=self.entity,
                current=current_status.value,
                target=target_status.value
            )
        return target_status


S = SupplierOrderStatus

SUPPLIER_ORDER_FLOW = StatusFlow(
    "supplier order",
    SupplierOrderStatus,
    {
        S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
        S.CONFIRMED: frozenset({S.IN_PRODUCTION, S.CANCELLED}),
        S.IN_PRODUCTION: frozenset({S.READY_TO_SHIP, S.CANCELLED}),
        S.READY_TO_SHIP: frozenset({S.SHIPPED, S.CANCELLED}),
        S.SHIPPED: frozenset({S.DELIVERED}),
        S.DELIVERED: frozenset(),
        S.CANCELLED: frozenset(),
    }
)

R = ReturnStatus

RETURN_FLOW = StatusFlow(
    "return request",
    ReturnStatus,
    {
        R.PENDING: frozenset({R.APPROVED, R.REJECTED}),
        R.APPROVED: frozenset({R.RECEIVED}),
        R.RECEIVED: frozenset({R.REFUNDED}),
        R.REJECTED: frozenset(),
        R.REFUNDED: frozenset(),
    }
)

# 计入供应商收入的状态
REVENUE_STATUSES = frozenset({
    S.CONFIRMED, S.IN_PRODUCTION, S.READY_TO_SHIP, S.SHIPPED, S.DELIVERED
})
