"""
退货 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends

from ff_core.container import EngineContainer
from ff_core.models.enums import ReturnStatus
from ff_core.services.status_flow import RETURN_FLOW
from ff_core.utils.logger import get_logger
from .deps import get_container
from .models import (
    ApiResponse, BulkApproveRequest, UpdateReturnStatusRequest, ResendNotificationRequest
)

router = APIRouter()
logger = get_logger(__name__)


@router.post("/returns/bulk-approve", response_model=ApiResponse[dict])
async def bulk_approve_returns(
    body: BulkApproveRequest,
    container: EngineContainer = Depends(get_container)
):
    """批量批准退货（按订单合并运单和通知）"""
    summary = await container.consolidator.bulk_approve(body.return_ids, carrier=body.carrier)
    return ApiResponse.success(summary.to_dict())


@router.get("/returns/{return_id}", response_model=ApiResponse[dict])
async def get_return(
    return_id: str,
    container: EngineContainer = Depends(get_container)
):
    """获取退货申请"""
    return_request = await container.returns.get_return(return_id)
    return ApiResponse.success(return_request.to_dict())


@router.patch("/returns/{return_id}/status", response_model=ApiResponse[dict])
async def update_return_status(
    return_id: str,
    body: UpdateReturnStatusRequest,
    container: EngineContainer = Depends(get_container)
):
    """
    变更退货状态

    APPROVED 走合并批准（单条），REFUNDED 走退款，其余为无副作用变更。
    """
    target = RETURN_FLOW.parse(body.status)

    if target == ReturnStatus.APPROVED:
        current = await container.returns.get_return(return_id)
        RETURN_FLOW.validate(current.status, target)
        summary = await container.consolidator.bulk_approve([return_id])
        return_request = await container.returns.get_return(return_id)
        return ApiResponse.success({
            "return": return_request.to_dict(),
            "consolidation": summary.to_dict(),
        })

    if target == ReturnStatus.REFUNDED:
        return_request = await container.returns.refund_return(return_id)
    else:
        return_request = await container.returns.transition_status(return_id, target.value)

    return ApiResponse.success({"return": return_request.to_dict()})


@router.post("/returns/{return_id}/refund", response_model=ApiResponse[dict])
async def refund_return(
    return_id: str,
    container: EngineContainer = Depends(get_container)
):
    """退款（结果记录在 refund_status）"""
    return_request = await container.returns.refund_return(return_id)
    return ApiResponse.success(return_request.to_dict())


@router.post("/orders/{order_id}/returns/resend-notification", response_model=ApiResponse[dict])
async def resend_return_notification(
    order_id: str,
    body: Optional[ResendNotificationRequest] = None,
    container: EngineContainer = Depends(get_container)
):
    """手动重发合并退货通知"""
    only_failed = body.only_failed if body else False
    result = await container.consolidator.resend_notification(order_id, only_failed=only_failed)
    return ApiResponse.success(result)
