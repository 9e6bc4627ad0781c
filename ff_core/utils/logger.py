"""
FulfilFlow 日志系统
- JSON 格式输出（本地开发可切换为控制台格式）
- 固定字段：ts, level, action, trace_id, operator, order_id, return_id
- 客户信息与凭据脱敏：邮箱、电话、收件地址、API 密钥
"""
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextvars import ContextVar

import structlog
from structlog.processors import JSONRenderer, TimeStamper, add_log_level

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
operator_var: ContextVar[Optional[str]] = ContextVar("operator", default=None)
order_id_var: ContextVar[Optional[str]] = ContextVar("order_id", default=None)
return_id_var: ContextVar[Optional[str]] = ContextVar("return_id", default=None)

# 按字段名整体替换的值
MASKED_KEYS = {
    "api_key", "authorization", "password", "secret", "token",
    "address_line1", "address_line2", "ship_address_line1", "ship_address_line2",
}

MASK = "***MASKED***"


class CustomerDataMaskingProcessor:
    """客户数据与凭据脱敏"""

    PATTERNS = (
        # 邮箱：保留首字母和域名
        (re.compile(r"([a-zA-Z0-9])[a-zA-Z0-9._+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"), r"\1***@\2"),
        # 电话（含 +40 等国家码）：保留前缀和后 3 位
        (re.compile(r"(\+\d{1,3}\s?\d{3})\d{3,8}(\d{3})"), r"\1****\2"),
        # 内联凭据，例如 "api-key: xxx"
        (re.compile(r"(api[-_]?key|token|secret|password|bearer)([\"']?\s*[:= ]\s*[\"']?)([^\"'\s,}]+)", re.I), r"\1\2" + MASK),
    )

    def __call__(self, logger, method_name, event_dict):
        return self._mask(event_dict)

    def _mask(self, value: Any, key: Optional[str] = None) -> Any:
        if key is not None and key.lower() in MASKED_KEYS and value:
            return MASK
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = pattern.sub(replacement, value)
            return value
        if isinstance(value, dict):
            return {k: self._mask(v, k) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._mask(item) for item in value]
        return value


class ContextFieldsProcessor:
    """把请求上下文写入每条日志"""

    CONTEXT_VARS = (
        ("trace_id", trace_id_var),
        ("operator", operator_var),
        ("order_id", order_id_var),
        ("return_id", return_id_var),
    )

    def __call__(self, logger, method_name, event_dict):
        event_dict["ts"] = datetime.now(timezone.utc).isoformat()

        for field, var in self.CONTEXT_VARS:
            value = var.get()
            if value:
                event_dict.setdefault(field, value)

        if "event" in event_dict:
            event_dict["action"] = event_dict.pop("event")

        if "exception" in event_dict:
            event_dict["err"] = str(event_dict.pop("exception"))

        return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json", mask_customer_data: bool = True) -> None:
    """配置 structlog 和标准 logging，统一输出到 stdout"""
    level = getattr(logging, log_level.upper())

    processors = [
        TimeStamper(fmt="iso"),
        add_log_level,
        structlog.processors.format_exc_info,
        ContextFieldsProcessor(),
    ]
    if mask_customer_data:
        processors.append(CustomerDataMaskingProcessor())
    processors.append(JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    # structlog 已经渲染好消息，这里只输出原文
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    # 第三方库只保留告警
    for logger_name in ("httpx", "httpcore", "asyncio", "uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取日志记录器"""
    return structlog.get_logger(name)


class LogContext:
    """设置请求 / 订单 / 退货级别的日志上下文"""

    def __init__(
        self,
        trace_id: Optional[str] = None,
        operator: Optional[str] = None,
        order_id: Optional[str] = None,
        return_id: Optional[str] = None
    ):
        self.values: Dict[ContextVar, Optional[str]] = {
            trace_id_var: trace_id,
            operator_var: operator,
            order_id_var: order_id,
            return_id_var: return_id,
        }
        self._tokens = []

    def __enter__(self):
        for var, value in self.values.items():
            if value:
                self._tokens.append(var.set(value))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self._tokens):
            token.var.reset(token)
        self._tokens.clear()
