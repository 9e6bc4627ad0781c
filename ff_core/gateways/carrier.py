"""
承运商网关

向承运商申请运单号和报价。未配置时由运单生成器在本地生成运单号。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from ff_core.utils.errors import GatewayError, GatewayTimeoutError
from ff_core.utils.external_api_timing import timed_external_api
from ff_core.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CarrierQuote:
    """承运商返回的运单号和报价（任一字段都可能缺失）"""
    tracking_number: Optional[str] = None
    cost: Optional[Decimal] = None


class CarrierGateway(ABC):
    """承运商网关接口"""

    @abstractmethod
    async def request_tracking(
        self,
        carrier: str,
        package_type: str,
        weight_kg: Decimal,
        destination: Dict[str, Any],
        reference: str
    ) -> CarrierQuote:
        ...

    async def close(self) -> None:
        return None


class HttpCarrierGateway(CarrierGateway):
    """基于 HTTP 的承运商聚合网关"""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def request_tracking(
        self,
        carrier: str,
        package_type: str,
        weight_kg: Decimal,
        destination: Dict[str, Any],
        reference: str
    ) -> CarrierQuote:
        payload = {
            "carrier": carrier,
            "package_type": package_type,
            "weight_kg": str(weight_kg),
            "destination": destination,
            "reference": reference,
        }

        logger.info("Requesting carrier tracking number", carrier=carrier, reference=reference)

        try:
            async with timed_external_api("CARRIER", "POST", "/shipments", carrier=carrier, reference=reference):
                response = await self._client.post("/shipments", json=payload)
        except httpx.TimeoutException as e:
            raise GatewayTimeoutError(detail=f"Carrier gateway timed out: {e}")
        except httpx.HTTPError as e:
            raise GatewayError(detail=f"Carrier gateway request failed: {e}")

        if response.status_code >= 400:
            logger.warning(
                "Carrier gateway rejected shipment",
                status_code=response.status_code,
                body=response.text[:500]
            )
            raise GatewayError(
                detail=f"Carrier gateway returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError:
            raise GatewayError(detail="Carrier gateway returned invalid JSON")

        return CarrierQuote(
            tracking_number=data.get("tracking_number") or None,
            cost=self._parse_cost(data.get("cost"))
        )

    @staticmethod
    def _parse_cost(value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            logger.warning("Ignoring unparseable carrier cost", cost=value)
            return None
