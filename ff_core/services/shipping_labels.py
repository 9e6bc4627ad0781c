"""
运单生成器
- 承运商目录、包裹类型（重量上限）、基础运费表（RON）
- 配置了承运商网关时以网关的运单号和报价为准，否则本地生成运单号
- 不持久化任何数据
"""
import asyncio
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ff_core.gateways.carrier import CarrierGateway, CarrierQuote
from ff_core.models.base import utcnow
from ff_core.models.enums import Carrier, PackageType, LabelSource
from ff_core.utils.errors import (
    FulfilFlowException,
    ValidationError,
    PackageTooHeavyError,
    UnknownCarrierError,
    GatewayError,
    GatewayTimeoutError,
)
from ff_core.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CarrierInfo:
    id: str
    name: str
    tracking_url: str


@dataclass(frozen=True)
class PackageInfo:
    id: str
    name: str
    max_weight_kg: Decimal


CARRIERS: Dict[str, CarrierInfo] = {
    c.id: c for c in (
        CarrierInfo(Carrier.FAN.value, "Fan Courier", "https://www.fancourier.ro/tracking"),
        CarrierInfo(Carrier.URGENT.value, "Urgent Cargus", "https://www.urgentcargus.ro/tracking"),
        CarrierInfo(Carrier.SAMEDAY.value, "SameDay", "https://www.sameday.ro/tracking"),
        CarrierInfo(Carrier.GLS.value, "GLS", "https://gls-group.eu/tracking"),
        CarrierInfo(Carrier.DPD.value, "DPD", "https://www.dpd.com/tracking"),
        CarrierInfo(Carrier.POSTA.value, "Poșta Română", "https://www.posta-romana.ro/tracking"),
    )
}

# 按重量上限从小到大排列
PACKAGE_TYPES: Dict[str, PackageInfo] = {
    p.id: p for p in (
        PackageInfo(PackageType.ENVELOPE.value, "Envelope", Decimal("0.5")),
        PackageInfo(PackageType.SMALL.value, "Small Package", Decimal("2")),
        PackageInfo(PackageType.MEDIUM.value, "Medium Package", Decimal("5")),
        PackageInfo(PackageType.LARGE.value, "Large Package", Decimal("10")),
        PackageInfo(PackageType.HEAVY.value, "Heavy Package", Decimal("30")),
    )
}


def _row(*costs: str) -> Dict[str, Decimal]:
    return dict(zip(PACKAGE_TYPES, (Decimal(c) for c in costs)))


# 基础运费（RON）：承运商 -> 包裹类型 -> 费用
BASE_COSTS: Dict[str, Dict[str, Decimal]] = {
    Carrier.FAN.value: _row("8", "12", "18", "25", "35"),
    Carrier.URGENT.value: _row("9", "13", "19", "26", "36"),
    Carrier.SAMEDAY.value: _row("15", "20", "28", "35", "45"),
    Carrier.GLS.value: _row("10", "14", "20", "27", "37"),
    Carrier.DPD.value: _row("11", "15", "21", "28", "38"),
    Carrier.POSTA.value: _row("7", "11", "17", "24", "34"),
}


def validate_rate_table() -> None:
    """每个承运商必须为每种包裹类型定价"""
    for carrier in CARRIERS:
        row = BASE_COSTS.get(carrier)
        if row is None:
            raise RuntimeError(f"Rate table has no row for carrier {carrier!r}")
        missing = [p for p in PACKAGE_TYPES if p not in row]
        if missing:
            raise RuntimeError(f"Rate table for {carrier!r} is missing {missing}")
        if any(cost < 0 for cost in row.values()):
            raise RuntimeError(f"Rate table for {carrier!r} has a negative cost")


validate_rate_table()

TRACKING_ALPHABET = string.digits + string.ascii_uppercase


def synthesize_tracking_number(carrier: str, now_ms: Optional[int] = None) -> str:
    """本地运单号：承运商前缀 + 毫秒时间戳后 8 位 + 4 位随机 [0-9A-Z]"""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(TRACKING_ALPHABET) for _ in range(4))
    return f"{carrier.upper()}{str(now_ms)[-8:]}{suffix}"


def _to_weight(weight_kg: Any) -> Decimal:
    if isinstance(weight_kg, bool):
        raise ValidationError(code="INVALID_WEIGHT", detail="weight_kg must be numeric")
    try:
        weight = weight_kg if isinstance(weight_kg, Decimal) else Decimal(str(weight_kg))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(code="INVALID_WEIGHT", detail=f"weight_kg must be numeric, got {weight_kg!r}")
    if not weight.is_finite() or weight <= 0:
        raise ValidationError(code="INVALID_WEIGHT", detail="weight_kg must be greater than zero")
    return weight


def select_package_type(weight_kg: Any) -> str:
    """选择能容纳该重量的最小包裹类型"""
    weight = _to_weight(weight_kg)
    for package in PACKAGE_TYPES.values():
        if weight <= package.max_weight_kg:
            return package.id
    heaviest = list(PACKAGE_TYPES.values())[-1]
    raise PackageTooHeavyError(heaviest.id, weight, heaviest.max_weight_kg)


@dataclass(frozen=True)
class ShippingLabel:
    """运单（计算结果，不落库）"""
    carrier: str
    package_type: str
    tracking_number: str
    cost: Decimal
    currency: str
    generated_at: datetime
    reference: str
    weight_kg: Decimal
    tracking_url: str
    source: str
    destination: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "carrier": self.carrier,
            "package_type": self.package_type,
            "tracking_number": self.tracking_number,
            "cost": str(self.cost),
            "currency": self.currency,
            "generated_at": self.generated_at.isoformat(),
            "reference": self.reference,
            "weight_kg": str(self.weight_kg),
            "tracking_url": self.tracking_url,
            "source": self.source,
            "destination": self.destination,
        }


class ShippingLabelGenerator:
    """运单生成器"""

    def __init__(
        self,
        carrier_gateway: Optional[CarrierGateway] = None,
        gateway_timeout: float = 10.0,
        currency: str = "RON"
    ):
        self.carrier_gateway = carrier_gateway
        self.gateway_timeout = gateway_timeout
        self.currency = currency

    @staticmethod
    def options() -> Dict[str, List[Dict[str, Any]]]:
        """承运商、包裹类型和运费表（供前端选择）"""
        return {
            "carriers": [
                {"id": c.id, "name": c.name, "tracking_url": c.tracking_url}
                for c in CARRIERS.values()
            ],
            "package_types": [
                {"id": p.id, "name": p.name, "max_weight_kg": str(p.max_weight_kg)}
                for p in PACKAGE_TYPES.values()
            ],
            "rates": {
                carrier: {package: str(cost) for package, cost in row.items()}
                for carrier, row in BASE_COSTS.items()
            },
        }

    async def generate_label(
        self,
        carrier: str,
        package_type: str,
        weight_kg: Any,
        destination: Dict[str, Any],
        reference: str
    ) -> ShippingLabel:
        """
        生成运单

        Raises:
            UnknownCarrierError: 承运商不在目录中
            ValidationError: 包裹类型未知或重量 <= 0
            PackageTooHeavyError: 重量超过包裹上限
            GatewayTimeoutError / GatewayError: 承运商网关失败（不自动重试）
        """
        carrier_info = CARRIERS.get(carrier)
        if carrier_info is None:
            raise UnknownCarrierError(carrier)

        package = PACKAGE_TYPES.get(package_type)
        if package is None:
            raise ValidationError(
                code="UNKNOWN_PACKAGE_TYPE",
                detail=f"Unknown package type {package_type!r}; expected one of {', '.join(PACKAGE_TYPES)}"
            )

        weight = _to_weight(weight_kg)
        if weight > package.max_weight_kg:
            raise PackageTooHeavyError(package.id, weight, package.max_weight_kg)

        quote = await self._request_quote(carrier, package.id, weight, destination, reference)

        tracking_number = quote.tracking_number
        source = LabelSource.CARRIER.value
        if not tracking_number:
            tracking_number = synthesize_tracking_number(carrier)
            source = LabelSource.SYNTHESIZED.value

        cost = quote.cost if quote.cost is not None else BASE_COSTS[carrier][package.id]

        label = ShippingLabel(
            carrier=carrier,
            package_type=package.id,
            tracking_number=tracking_number,
            cost=cost,
            currency=self.currency,
            generated_at=utcnow(),
            reference=reference,
            weight_kg=weight,
            tracking_url=f"{carrier_info.tracking_url}?tracking={tracking_number}",
            source=source,
            destination=dict(destination or {}),
        )

        logger.info(
            "Shipping label generated",
            carrier=carrier,
            package_type=package.id,
            reference=reference,
            tracking_number=tracking_number,
            source=source,
            cost=str(cost)
        )
        return label

    async def _request_quote(
        self,
        carrier: str,
        package_type: str,
        weight: Decimal,
        destination: Dict[str, Any],
        reference: str
    ) -> CarrierQuote:
        if self.carrier_gateway is None:
            return CarrierQuote()

        try:
            return await asyncio.wait_for(
                self.carrier_gateway.request_tracking(carrier, package_type, weight, destination, reference),
                timeout=self.gateway_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Carrier gateway timed out", carrier=carrier, reference=reference)
            raise GatewayTimeoutError(
                detail=f"Carrier gateway did not answer within {self.gateway_timeout}s"
            )
        except FulfilFlowException:
            raise
        except Exception as e:
            logger.error("Carrier gateway failed", carrier=carrier, reference=reference, exc_info=True)
            raise GatewayError(detail=f"Carrier gateway failed: {e}")
