"""
外部 API 计时工具

承运商、退款、通知网关的每次调用都记录一条耗时日志，失败时带上异常类型。
"""
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from ff_core.utils.logger import get_logger

logger = get_logger("external_api_timing")


@asynccontextmanager
async def timed_external_api(
    service: str,
    method: str,
    endpoint: str,
    **extra: Any
):
    """
    计时外部 API 调用

    用法:
        async with timed_external_api("CARRIER", "POST", "/shipments", reference=ref) as timing:
            response = await client.post("/shipments", json=data)
        timing["latency_ms"]  # 调用耗时

    Args:
        service: 服务名称（CARRIER / REFUND / NOTIFICATION）
        method: HTTP 方法
        endpoint: API 端点
        extra: 附加日志字段（reference、order_number 等）
    """
    timing: Dict[str, Optional[float]] = {"latency_ms": None}
    start = time.perf_counter()
    error: Optional[str] = None
    try:
        yield timing
    except Exception as e:
        error = type(e).__name__
        raise
    finally:
        timing["latency_ms"] = round((time.perf_counter() - start) * 1000, 1)
        log = logger.warning if error else logger.info
        log(
            "External API timing",
            service=service,
            method=method,
            endpoint=endpoint,
            latency_ms=timing["latency_ms"],
            error=error,
            **extra
        )
