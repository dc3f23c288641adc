"""Transactional email through SendGrid."""

import asyncio
import html
import re
from decimal import Decimal
from typing import Iterable, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from curio_market.core.config import settings
from curio_market.core.logging import get_logger

logger = get_logger(__name__)

_TAG = re.compile(r"<[^>]+>")
_BLANK_LINES = re.compile(r"\n\s*\n+")


def html_to_text(body: str) -> str:
    """Rough plain-text rendition of an HTML body."""
    text = re.sub(r"<\s*(br|/p|/div|/h\d|/li|/tr)\s*/?>", "\n", body, flags=re.IGNORECASE)
    text = html.unescape(_TAG.sub("", text))
    return _BLANK_LINES.sub("\n\n", text).strip()


def _money(amount) -> str:
    return f"${Decimal(amount):.2f}"


class EmailService:
    """
    Sends the marketplace's transactional mail.

    The SendGrid client is synchronous, so sends run in a worker thread.
    Failures are logged and reported as False; callers never see an
    exception from here.
    """

    def __init__(self):
        self._client: Optional[SendGridAPIClient] = None

    @property
    def configured(self) -> bool:
        return bool(settings.SENDGRID_API_KEY)

    def _get_client(self) -> SendGridAPIClient:
        if self._client is None:
            self._client = SendGridAPIClient(settings.SENDGRID_API_KEY)
        return self._client

    async def send(
        self,
        *,
        to: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        if not self.configured:
            logger.info(f"SendGrid not configured, skipping email to {to}: {subject}")
            return False
        if not to:
            logger.warning(f"No recipient for email: {subject}")
            return False

        message = Mail(
            from_email=settings.EMAIL_FROM_ADDRESS,
            to_emails=to,
            subject=subject,
            html_content=html_body,
            plain_text_content=text_body or html_to_text(html_body),
        )
        try:
            response = await asyncio.to_thread(self._get_client().send, message)
        except Exception as e:
            logger.error(f"SendGrid send failed for {to} ({subject}): {e}")
            return False

        if response.status_code >= 300:
            logger.error(f"SendGrid rejected email to {to}: HTTP {response.status_code}")
            return False
        logger.debug(f"Email sent to {to}: {subject}")
        return True

    # ── Templates ──────────────────────────────────────────────────────────

    async def send_order_confirmation(self, to: str, order, items: Iterable) -> bool:
        rows = "".join(
            f"<tr><td>{html.escape(item.title)}</td><td>{item.quantity}</td>"
            f"<td>{_money(item.price)}</td></tr>"
            for item in items
        )
        body = (
            f"<h2>Thank you for your order</h2>"
            f"<p>Order <strong>{order.id}</strong> has been paid.</p>"
            f"<table>{rows}</table>"
            f"<p>Shipping: {_money(order.shipping_cost)}</p>"
            f"<p>Discount: {_money(order.discount)}</p>"
            f"<p><strong>Total: {_money(order.total)}</strong></p>"
        )
        return await self.send(to=to, subject=f"Order confirmation #{order.id[:8]}", html_body=body)

    async def send_new_order_notification(self, to: str, order, shop_name: str) -> bool:
        body = (
            f"<h2>New order for {html.escape(shop_name)}</h2>"
            f"<p>Order <strong>{order.id}</strong> was placed for {_money(order.total)}.</p>"
            f"<p>Please ship it and add tracking from your seller dashboard.</p>"
        )
        return await self.send(to=to, subject=f"New order #{order.id[:8]}", html_body=body)

    async def send_shipping_notification(self, to: str, order) -> bool:
        body = (
            f"<h2>Your order has shipped</h2>"
            f"<p>Order <strong>{order.id}</strong> is on its way with "
            f"{html.escape(order.carrier or 'the carrier')}.</p>"
            f"<p>Tracking number: {html.escape(order.tracking_number or '')}</p>"
        )
        return await self.send(to=to, subject=f"Order #{order.id[:8]} shipped", html_body=body)

    async def send_delivery_confirmation(self, to: str, order) -> bool:
        body = (
            f"<h2>Your order was delivered</h2>"
            f"<p>Order <strong>{order.id}</strong> has been marked as delivered. "
            f"We hope you enjoy it. You can now leave a review.</p>"
        )
        return await self.send(to=to, subject=f"Order #{order.id[:8]} delivered", html_body=body)

    async def send_verification_code(self, to: str, code: str, expires_in: str) -> bool:
        body = (
            f"<h2>Your Curio Market verification code</h2>"
            f"<p style=\"font-size:24px;letter-spacing:4px\"><strong>{code}</strong></p>"
            f"<p>This code expires in {expires_in}.</p>"
        )
        return await self.send(to=to, subject="Your verification code", html_body=body)


email_service = EmailService()
