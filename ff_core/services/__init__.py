"""
FulfilFlow 服务层
"""
from .base import BaseService, RepositoryMixin
from .commission import CommissionCalculator, CommissionBreakdown
from .fulfillment import FulfillmentService
from .shipping_labels import ShippingLabelGenerator, ShippingLabel, select_package_type
from .returns import ReturnsService
from .return_labels import ReturnAddress, render_return_label
from .consolidation import ReturnsConsolidator, ConsolidationSummary

__all__ = [
    "BaseService",
    "RepositoryMixin",
    "CommissionCalculator",
    "CommissionBreakdown",
    "FulfillmentService",
    "ShippingLabelGenerator",
    "ShippingLabel",
    "select_package_type",
    "ReturnsService",
    "ReturnsConsolidator",
    "ConsolidationSummary",
    "ReturnAddress",
    "render_return_label",
]
