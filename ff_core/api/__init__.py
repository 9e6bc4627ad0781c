"""
FulfilFlow API 路由模块
"""
from fastapi import APIRouter

from .supplier_orders import router as supplier_orders_router
from .shipping import router as shipping_router
from .returns import router as returns_router

# 创建主路由器
api_router = APIRouter()

api_router.include_router(supplier_orders_router, tags=["Supplier Orders"])
api_router.include_router(shipping_router, tags=["Shipping"])
api_router.include_router(returns_router, tags=["Returns"])

__all__ = ["api_router"]
