"""
FulfilFlow 错误处理系统
遵循 RFC7807 Problem Details 标准
"""
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field


class ProblemDetail(BaseModel):
    """RFC7807 Problem Details 模型"""
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "type": "about:blank",
                "title": "Illegal Transition",
                "status": 409,
                "detail": "Cannot move supplier order from SHIPPED to SHIPPED",
                "code": "ILLEGAL_TRANSITION"
            }
        }
    )

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    code: Optional[str] = None  # 业务错误码


class FulfilFlowException(Exception):
    """FulfilFlow 基础异常类"""

    def __init__(
        self,
        status: int,
        code: str,
        title: str,
        detail: Optional[str] = None,
        **kwargs
    ):
        self.status = status
        self.code = code
        self.title = title
        self.detail = detail
        self.extra = kwargs
        super().__init__(detail or title)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """转换为 Problem Details 格式"""
        return ProblemDetail(
            type="about:blank",
            title=self.title,
            status=self.status,
            detail=self.detail,
            instance=instance,
            code=self.code,
            **self.extra
        )

    def to_response(self, request: Optional[Request] = None) -> JSONResponse:
        """转换为 JSON 响应"""
        instance = str(request.url) if request else None
        problem = self.to_problem_detail(instance)

        return JSONResponse(
            status_code=self.status,
            content={
                "ok": False,
                "error": problem.model_dump(exclude_none=True, mode="json")
            }
        )


# 预定义错误类
class NotFoundError(FulfilFlowException):
    """404 未找到"""
    def __init__(self, code: str, resource: str):
        super().__init__(
            status=404,
            code=code,
            title="Not Found",
            detail=f"{resource} not found"
        )


class ConflictError(FulfilFlowException):
    """409 冲突"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=409,
            code=code,
            title="Conflict",
            detail=detail
        )


class IllegalTransitionError(FulfilFlowException):
    """409 状态机不允许的状态变更"""
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            status=409,
            code="ILLEGAL_TRANSITION",
            title="Illegal Transition",
            detail=f"Cannot move {entity} from {current} to {target}",
            current_status=current,
            target_status=target
        )


class ValidationError(FulfilFlowException):
    """422 验证失败（非法输入）"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=422,
            code=code,
            title="Validation Failed",
            detail=detail
        )


class MissingTrackingNumberError(ValidationError):
    """422 发货必须提供运单号"""
    def __init__(self, detail: str = "A tracking number is required to ship"):
        super().__init__(code="MISSING_TRACKING_NUMBER", detail=detail)


class PackageTooHeavyError(ValidationError):
    """422 重量超过包裹类型上限"""
    def __init__(self, package_type: str, weight_kg: Any, max_weight_kg: Any):
        super().__init__(
            code="PACKAGE_TOO_HEAVY",
            detail=(
                f"Declared weight {weight_kg}kg exceeds the {max_weight_kg}kg "
                f"ceiling of package type '{package_type}'"
            )
        )


class UnknownCarrierError(ValidationError):
    """422 未知承运商"""
    def __init__(self, carrier: str):
        super().__init__(
            code="UNKNOWN_CARRIER",
            detail=f"Unknown carrier: {carrier}"
        )


class GatewayError(FulfilFlowException):
    """502 外部服务返回错误"""
    def __init__(self, code: str = "GATEWAY_ERROR", detail: str = "External service failed"):
        super().__init__(
            status=502,
            code=code,
            title="Bad Gateway",
            detail=detail
        )


class DispatchError(GatewayError):
    """502 通知发送失败（不影响已提交的账本变更）"""
    def __init__(self, detail: str = "Notification dispatch failed"):
        super().__init__(code="DISPATCH_FAILED", detail=detail)


class GatewayTimeoutError(FulfilFlowException):
    """504 外部服务超时"""
    def __init__(self, code: str = "GATEWAY_TIMEOUT", detail: str = "External service timed out"):
        super().__init__(
            status=504,
            code=code,
            title="Gateway Timeout",
            detail=detail
        )


class InternalServerError(FulfilFlowException):
    """500 内部错误"""
    def __init__(self, code: str = "INTERNAL_ERROR", detail: str = "An internal error occurred"):
        super().__init__(
            status=500,
            code=code,
            title="Internal Server Error",
            detail=detail
        )


def problem_payload(exc: FulfilFlowException) -> Dict[str, Any]:
    """批量操作中记录单个失败的精简格式"""
    return {"code": exc.code, "reason": exc.detail or exc.title}
