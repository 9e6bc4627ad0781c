"""
外部服务网关：承运商、退款、通知
"""
from .carrier import CarrierGateway, CarrierQuote, HttpCarrierGateway
from .refund import RefundGateway, RefundOutcome, HttpRefundGateway
from .notifications import (
    NotificationDispatcher,
    HttpNotificationDispatcher,
    ConsolidatedNotification,
    NotificationItem,
    LabelAttachment,
)

__all__ = [
    "CarrierGateway",
    "CarrierQuote",
    "HttpCarrierGateway",
    "RefundGateway",
    "RefundOutcome",
    "HttpRefundGateway",
    "NotificationDispatcher",
    "HttpNotificationDispatcher",
    "ConsolidatedNotification",
    "NotificationItem",
    "LabelAttachment",
]
