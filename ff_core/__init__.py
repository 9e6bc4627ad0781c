"""
FulfilFlow - 订单履约与退货引擎
"""

__version__ = "1.0.0"
