"""
退货面单渲染

每个合并退货包裹生成一张可打印面单（HTML 文档），作为通知邮件附件发送给客户。
面单内容：RMA 参考号、退货地址、寄件人、退货商品、承运商与运单号、寄送说明。
"""
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from typing import Any, Dict, List, Optional

from ff_core.gateways.notifications import (
    LabelAttachment, REASON_LABELS, RETURN_SHIPPING_WINDOW_DAYS
)

SHIPPING_INSTRUCTIONS = (
    "Cut along the dotted line and attach this label to your package.",
    "Pack ALL items listed below in the same parcel, in their original packaging if possible.",
    "Drop off the package at the carrier or any post office.",
    "Keep your receipt until the return is processed.",
)


@dataclass(frozen=True)
class ReturnAddress:
    """仓库退货地址"""
    name: str
    address_line1: str
    city: str
    country: str
    address_line2: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None

    def lines(self) -> List[str]:
        locality = " ".join(p for p in (self.postal_code, self.city) if p)
        if self.state:
            locality = f"{locality}, {self.state}"
        return [
            line for line in (
                self.name, self.address_line1, self.address_line2, locality, self.country, self.phone
            ) if line
        ]


@dataclass(frozen=True)
class LabelLine:
    name: str
    quantity: int
    reason: str
    sku: Optional[str] = None


@dataclass(frozen=True)
class ReturnLabelDocument:
    """一张退货面单的全部内容"""
    reference: str
    order_number: str
    tracking_number: str
    carrier: str
    return_address: ReturnAddress
    sender_name: str
    sender_email: str
    sender_address: Dict[str, Any] = field(default_factory=dict)
    return_ids: List[str] = field(default_factory=list)
    items: List[LabelLine] = field(default_factory=list)
    issued_at: Optional[datetime] = None

    @property
    def filename(self) -> str:
        return f"return-label-{self.order_number}.html"


def _sender_lines(document: ReturnLabelDocument) -> List[str]:
    address = document.sender_address or {}
    locality = " ".join(
        str(address[k]) for k in ("postal_code", "city") if address.get(k)
    )
    if address.get("state"):
        locality = f"{locality}, {address['state']}"
    lines = [
        document.sender_name,
        address.get("address_line1"),
        address.get("address_line2"),
        locality,
        address.get("country"),
        document.sender_email,
    ]
    return [str(line) for line in lines if line]


def _block(lines: List[str]) -> str:
    return "<br>".join(escape(line) for line in lines)


def render_return_label(document: ReturnLabelDocument) -> str:
    """渲染可打印退货面单（HTML）"""
    rows = "".join(
        "<tr>"
        f"<td>{escape(item.name)}</td>"
        f"<td>{escape(item.sku or '-')}</td>"
        f"<td style=\"text-align: center;\">{item.quantity}</td>"
        f"<td>{escape(REASON_LABELS.get(item.reason, item.reason))}</td>"
        "</tr>"
        for item in document.items
    )
    steps = "".join(f"<li>{escape(step)}</li>" for step in SHIPPING_INSTRUCTIONS)
    issued = ""
    if document.issued_at:
        issued = f"<p>Issued: {document.issued_at.strftime('%d %B %Y')}</p>"
    return_ids = ""
    if document.return_ids:
        return_ids = f"<p><strong>Return IDs:</strong> {escape(', '.join(document.return_ids))}</p>"

    return (
        "<!DOCTYPE html>"
        "<html><head><meta charset=\"utf-8\">"
        f"<title>Return label {escape(document.reference)}</title></head>"
        "<body style=\"font-family: Arial, sans-serif; max-width: 700px; margin: 0 auto;\">"
        "<h1 style=\"text-align: center;\">RETURN SHIPPING LABEL</h1>"
        f"<h2 style=\"text-align: center;\">RMA: {escape(document.reference)}</h2>"
        "<div style=\"border: 2px dashed #000; padding: 16px;\">"
        "<table style=\"width: 100%;\"><tr>"
        f"<td style=\"vertical-align: top;\"><strong>FROM</strong><br>{_block(_sender_lines(document))}</td>"
        f"<td style=\"vertical-align: top;\"><strong>SHIP TO</strong><br>{_block(document.return_address.lines())}</td>"
        "</tr></table>"
        f"<p><strong>Carrier:</strong> {escape(document.carrier)}<br>"
        f"<strong>Tracking number:</strong> "
        f"<span style=\"font-family: monospace; font-size: 20px;\">{escape(document.tracking_number)}</span></p>"
        "</div>"
        "<h3>Return details</h3>"
        f"<p><strong>Order number:</strong> {escape(document.order_number)}</p>"
        f"{return_ids}"
        "<table style=\"width: 100%; border-collapse: collapse;\">"
        "<tr><th>Product</th><th>SKU</th><th>Quantity</th><th>Reason</th></tr>"
        f"{rows}"
        "</table>"
        "<h3>Shipping instructions</h3>"
        f"<ol>{steps}</ol>"
        f"<p>You have {RETURN_SHIPPING_WINDOW_DAYS} days from approval to send the package.</p>"
        f"{issued}"
        "</body></html>"
    )


def build_label_attachment(document: ReturnLabelDocument) -> LabelAttachment:
    """渲染面单并包装为邮件附件"""
    return LabelAttachment(
        filename=document.filename,
        content=render_return_label(document).encode("utf-8"),
        content_type="text/html"
    )
