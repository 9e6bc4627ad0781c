"""
API 请求/响应模型
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    ok: bool = Field(description="操作是否成功")
    data: Optional[T] = Field(default=None, description="响应数据")
    error: Optional[Dict[str, Any]] = Field(default=None, description="错误信息（RFC7807 Problem Details）")

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """创建成功响应"""
        return cls(ok=True, data=data)


# 供应商履约单
class AdvanceSupplierOrderRequest(BaseModel):
    """推进履约单状态"""
    status: str = Field(description="目标状态")
    tracking_number: Optional[str] = Field(default=None, description="运单号（发货时必填）")
    notes: Optional[str] = Field(default=None, max_length=2000, description="备注")


# 运单
class DestinationAddress(BaseModel):
    """收件地址"""
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str = "RO"
    phone: Optional[str] = None


class GenerateLabelRequest(BaseModel):
    """生成运单"""
    carrier: str = Field(description="承运商ID，如 fan / sameday / posta")
    package_type: str = Field(description="包裹类型，如 envelope / small / medium")
    weight_kg: Decimal = Field(description="申报重量（千克）")
    destination: DestinationAddress
    reference: str = Field(min_length=1, description="业务参考号（订单号等）")


# 退货
class BulkApproveRequest(BaseModel):
    """批量批准退货"""
    return_ids: List[str] = Field(description="退货申请ID列表")
    carrier: Optional[str] = Field(default=None, description="承运商，默认使用配置")


class UpdateReturnStatusRequest(BaseModel):
    """变更退货状态"""
    status: str = Field(description="目标状态")


class ResendNotificationRequest(BaseModel):
    """重发合并退货通知"""
    only_failed: bool = Field(default=False, description="只重发之前失败的通知")
