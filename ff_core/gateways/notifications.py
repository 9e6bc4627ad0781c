"""
通知网关 - 发送合并退货邮件

一个订单的一批退货只发送一封邮件，包含唯一的运单号和可打印退货面单附件。
"""
import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from typing import List, Optional

import httpx

from ff_core.utils.errors import DispatchError
from ff_core.utils.external_api_timing import timed_external_api
from ff_core.utils.logger import get_logger

logger = get_logger(__name__)

REASON_LABELS = {
    "DOES_NOT_MEET_EXPECTATIONS": "Does not meet expectations",
    "DAMAGED_OR_DEFECTIVE": "Damaged or defective",
    "WRONG_ITEM_SHIPPED": "Wrong item shipped",
    "CHANGED_MIND": "Changed mind",
    "ORDERED_WRONG_PRODUCT": "Ordered the wrong product",
    "OTHER": "Other",
}

# 客户收到批准通知后寄回包裹的期限
RETURN_SHIPPING_WINDOW_DAYS = 14


@dataclass(frozen=True)
class NotificationItem:
    name: str
    quantity: int
    reason: str


@dataclass(frozen=True)
class LabelAttachment:
    """可打印退货面单附件"""
    filename: str
    content: bytes
    content_type: str = "text/html"

    def to_brevo(self) -> dict:
        return {"name": self.filename, "content": base64.b64encode(self.content).decode("ascii")}


@dataclass(frozen=True)
class ConsolidatedNotification:
    """合并退货通知内容"""
    recipient_email: str
    recipient_name: str
    order_number: str
    tracking_number: str
    carrier: str
    tracking_url: Optional[str] = None
    order_date: Optional[datetime] = None
    items: List[NotificationItem] = field(default_factory=list)
    label: Optional[LabelAttachment] = None

    @property
    def subject(self) -> str:
        return (
            f"Return approved for {len(self.items)} item(s) - "
            f"Order #{self.order_number}"
        )


def render_consolidated_email(notification: ConsolidatedNotification) -> str:
    """渲染合并退货 HTML 邮件"""
    rows = "".join(
        "<tr>"
        f"<td>{escape(item.name)}</td>"
        f"<td style=\"text-align: center;\">{item.quantity}</td>"
        f"<td>{escape(REASON_LABELS.get(item.reason, item.reason))}</td>"
        "</tr>"
        for item in notification.items
    )

    tracking = escape(notification.tracking_number)
    if notification.tracking_url:
        tracking = f"<a href=\"{escape(notification.tracking_url)}\">{tracking}</a>"

    order_date = ""
    if notification.order_date:
        order_date = (
            f"<p><strong>Order date:</strong> {notification.order_date.strftime('%d %B %Y')}</p>"
        )

    label_note = ""
    if notification.label:
        label_note = (
            f"<p>Your return label is attached ({escape(notification.label.filename)}). "
            "Print it and attach it to the parcel.</p>"
        )

    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h2>Your return requests were approved - Order #{escape(notification.order_number)}</h2>"
        f"<p>Hello {escape(notification.recipient_name or 'Customer')},</p>"
        "<p>All items below were approved for return and share a single return label.</p>"
        f"{label_note}"
        f"{order_date}"
        f"<p><strong>Carrier:</strong> {escape(notification.carrier)}<br>"
        f"<strong>Tracking number:</strong> {tracking}</p>"
        "<table style=\"width: 100%; border-collapse: collapse;\">"
        "<tr><th>Product</th><th>Quantity</th><th>Reason</th></tr>"
        f"{rows}"
        "</table>"
        "<p>Please pack ALL items in the same parcel and use the single tracking number above.</p>"
        f"<p>You have {RETURN_SHIPPING_WINDOW_DAYS} days from this approval to send the parcel.</p>"
        "</div>"
    )


class NotificationDispatcher(ABC):
    """通知网关接口，失败时抛出 DispatchError"""

    @abstractmethod
    async def send_consolidated(self, notification: ConsolidatedNotification) -> None:
        ...

    async def close(self) -> None:
        return None


class HttpNotificationDispatcher(NotificationDispatcher):
    """事务邮件 API（Brevo v3 兼容）"""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        sender_email: str,
        sender_name: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
        }
        if api_key:
            headers["api-key"] = api_key

        self.sender = {"email": sender_email, "name": sender_name}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def send_consolidated(self, notification: ConsolidatedNotification) -> None:
        payload = {
            "sender": self.sender,
            "to": [{"email": notification.recipient_email, "name": notification.recipient_name}],
            "subject": notification.subject,
            "htmlContent": render_consolidated_email(notification),
            "tags": ["returns", "consolidated"],
        }
        if notification.label:
            payload["attachment"] = [notification.label.to_brevo()]

        try:
            async with timed_external_api(
                "NOTIFICATION", "POST", "/v3/smtp/email",
                order_number=notification.order_number
            ):
                response = await self._client.post("/v3/smtp/email", json=payload)
        except httpx.TimeoutException as e:
            raise DispatchError(detail=f"Notification dispatch timed out: {e}")
        except httpx.HTTPError as e:
            raise DispatchError(detail=f"Notification dispatch failed: {e}")

        if response.status_code >= 400:
            logger.warning(
                "Email API rejected message",
                status_code=response.status_code,
                body=response.text[:500]
            )
            raise DispatchError(detail=f"Email API returned HTTP {response.status_code}")

        logger.info(
            "Consolidated return email sent",
            order_number=notification.order_number,
            tracking_number=notification.tracking_number,
            items=len(notification.items),
            label_attached=notification.label is not None
        )
