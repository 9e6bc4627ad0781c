"""
供应商履约 API 路由
"""
from fastapi import APIRouter, Depends, Query

from ff_core.container import EngineContainer
from ff_core.utils.logger import get_logger
from .deps import get_container, jsonable
from .models import ApiResponse, AdvanceSupplierOrderRequest

router = APIRouter()
logger = get_logger(__name__)


@router.get("/supplier-orders/{supplier_order_id}", response_model=ApiResponse[dict])
async def get_supplier_order(
    supplier_order_id: str,
    container: EngineContainer = Depends(get_container)
):
    """获取供应商履约单"""
    supplier_order = await container.fulfillment.get_supplier_order(supplier_order_id)
    return ApiResponse.success(supplier_order.to_dict())


@router.post("/supplier-orders/{supplier_order_id}/advance", response_model=ApiResponse[dict])
async def advance_supplier_order(
    supplier_order_id: str,
    body: AdvanceSupplierOrderRequest,
    container: EngineContainer = Depends(get_container)
):
    """推进供应商履约单状态"""
    supplier_order = await container.fulfillment.advance_supplier_order(
        supplier_order_id,
        body.status,
        tracking_number=body.tracking_number,
        notes=body.notes
    )
    return ApiResponse.success(supplier_order.to_dict())


@router.post("/orders/{order_id}/supplier-orders", response_model=ApiResponse[list])
async def split_order(
    order_id: str,
    container: EngineContainer = Depends(get_container)
):
    """按供应商拆分已支付订单"""
    supplier_orders = await container.fulfillment.split_order(order_id)
    return ApiResponse.success([so.to_dict() for so in supplier_orders])


@router.get("/suppliers/{supplier_id}/revenue", response_model=ApiResponse[dict])
async def supplier_revenue(
    supplier_id: str,
    period: str = Query("30d", description="统计窗口：7d / 30d / 90d / 1y"),
    container: EngineContainer = Depends(get_container)
):
    """供应商收入汇总"""
    summary = await container.fulfillment.supplier_revenue_summary(supplier_id, period)
    return ApiResponse.success(jsonable(summary))
