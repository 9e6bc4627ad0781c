"""
API 依赖注入
"""
from decimal import Decimal
from typing import Any

from fastapi import Request

from ff_core.container import EngineContainer


def get_container(request: Request) -> EngineContainer:
    """获取应用级组件容器"""
    return request.app.state.container


def jsonable(value: Any) -> Any:
    """Decimal 序列化为字符串，保持金额精度"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [jsonable(v) for v in value]
    return value
