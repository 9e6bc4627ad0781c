"""
退款网关
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from ff_core.utils.errors import GatewayError, GatewayTimeoutError
from ff_core.utils.external_api_timing import timed_external_api
from ff_core.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RefundOutcome:
    success: bool
    reason: Optional[str] = None


class RefundGateway(ABC):
    """退款网关接口

    业务拒绝返回 RefundOutcome(success=False)；传输层失败抛出 GatewayError / GatewayTimeoutError。
    同一 return_request_id 重复调用只退款一次（幂等键）。
    """

    @abstractmethod
    async def refund(self, return_request_id: str) -> RefundOutcome:
        ...

    async def close(self) -> None:
        return None


class HttpRefundGateway(RefundGateway):
    """基于 HTTP 的支付退款网关"""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def refund(self, return_request_id: str) -> RefundOutcome:
        try:
            async with timed_external_api("REFUND", "POST", "/refunds", return_request_id=return_request_id):
                response = await self._client.post(
                    "/refunds",
                    json={"return_request_id": return_request_id},
                    headers={"Idempotency-Key": f"refund-{return_request_id}"}
                )
        except httpx.TimeoutException as e:
            raise GatewayTimeoutError(detail=f"Refund gateway timed out: {e}")
        except httpx.HTTPError as e:
            raise GatewayError(detail=f"Refund gateway request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 500:
            raise GatewayError(detail=f"Refund gateway returned HTTP {response.status_code}")

        if response.status_code >= 400:
            # 4xx 表示支付方拒绝退款，属于业务结果
            reason = data.get("reason") or f"Refund rejected with HTTP {response.status_code}"
            logger.info("Refund rejected", return_request_id=return_request_id, reason=reason)
            return RefundOutcome(success=False, reason=reason)

        if data.get("success", True):
            return RefundOutcome(success=True)

        return RefundOutcome(success=False, reason=data.get("reason") or "Refund declined")
