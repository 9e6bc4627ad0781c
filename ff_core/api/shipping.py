"""
运单 API 路由
"""
from fastapi import APIRouter, Depends

from ff_core.container import EngineContainer
from ff_core.services.shipping_labels import ShippingLabelGenerator
from .deps import get_container
from .models import ApiResponse, GenerateLabelRequest

router = APIRouter()


@router.get("/shipping/options", response_model=ApiResponse[dict])
async def shipping_options():
    """承运商、包裹类型和基础运费表"""
    return ApiResponse.success(ShippingLabelGenerator.options())


@router.post("/shipping/labels", response_model=ApiResponse[dict])
async def generate_shipping_label(
    body: GenerateLabelRequest,
    container: EngineContainer = Depends(get_container)
):
    """生成运单（不落库）"""
    label = await container.label_generator.generate_label(
        carrier=body.carrier,
        package_type=body.package_type,
        weight_kg=body.weight_kg,
        destination=body.destination.model_dump(),
        reference=body.reference
    )
    return ApiResponse.success(label.to_dict())
