"""Checkout, order creation and post-purchase order handling.

A cart can hold listings from several shops. Checkout takes one Stripe
payment for the whole cart and turns it into one order per seller. Order
creation is keyed by the payment intent, so the browser confirmation and
the ``payment_intent.succeeded`` webhook can both arrive without creating
orders twice.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.circuit_breaker import CircuitOpenError
from curio_market.core.config import settings
from curio_market.core.locks import KeyedLockRegistry, checkout_locks
from curio_market.core.logging import get_logger, log_success, log_warn, log_fail
from curio_market.crud.cart import cart_crud
from curio_market.crud.listing import listing_crud
from curio_market.crud.notification import notification_crud
from curio_market.crud.order import order_crud, dispute_crud
from curio_market.crud.user import user_crud
from curio_market.db.base import utcnow
from curio_market.models.cart import CartItem
from curio_market.models.listing import Listing, ListingState
from curio_market.models.notification import NotificationType
from curio_market.models.order import CheckoutRefund, Order, OrderItem, OrderStatus, Dispute, DisputeStatus
from curio_market.models.promotion import Promotion
from curio_market.models.seller import Seller
from curio_market.services import promotion_service
from curio_market.services.email_service import email_service
from curio_market.services.promotion_service import PromotionError
from curio_market.services.stripe_gateway import (
    StripeGateway,
    PaymentsNotConfiguredError,
    stripe_gateway,
)

logger = get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

PROCESSOR_ERRORS = (stripe.StripeError, CircuitOpenError, PaymentsNotConfiguredError)
DISPUTABLE = (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.FULFILLED)
REFUNDABLE = (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.FULFILLED, OrderStatus.DISPUTED)


class CheckoutError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class SellerGroup:
    """Cart lines of one seller with their computed totals."""
    seller_id: str
    lines: List[Tuple[CartItem, Listing]] = field(default_factory=list)
    subtotal: Decimal = ZERO
    shipping: Decimal = ZERO
    discount: Decimal = ZERO
    platform_fee: Decimal = ZERO
    total: Decimal = ZERO
    promotion: Optional[Promotion] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "seller_id": self.seller_id,
            "subtotal": self.subtotal,
            "shipping": self.shipping,
            "discount": self.discount,
            "platform_fee": self.platform_fee,
            "total": self.total,
        }


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def platform_fee_for(amount: Decimal) -> Decimal:
    fee = amount * Decimal(str(settings.PLATFORM_FEE_PERCENT)) / Decimal(100)
    return fee.quantize(CENT, rounding=ROUND_HALF_UP)


class CheckoutService:

    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ):
        self.gateway = gateway or stripe_gateway
        self.locks = locks or checkout_locks

    # ── cart → seller groups ───────────────────────────────────────────────

    async def _cart_lines(self, db: AsyncSession, buyer_id: str):
        cart = await cart_crud.get_for_owner(db, user_id=buyer_id)
        if cart is None:
            raise CheckoutError("Cart is empty")
        lines = await cart_crud.get_items(db, cart.id)
        if not lines:
            raise CheckoutError("Cart is empty")

        for item, listing in lines:
            if listing is None or listing.state != ListingState.PUBLISHED:
                raise CheckoutError(f"Listing {item.listing_id} is no longer available", status_code=409)
            if item.quantity > listing.quantity:
                raise CheckoutError(f"Only {listing.quantity} of {listing.title} left in stock", status_code=409)
        return cart, lines

    async def build_groups(
        self,
        db: AsyncSession,
        lines: List[Tuple[CartItem, Listing]],
        promotion_code: Optional[str] = None,
    ) -> List[SellerGroup]:
        """
        Split cart lines by seller and price each group.

        Shipping is charged once per line. A promotion code belongs to one
        seller and only discounts that seller's group. The platform fee is
        taken from the seller's share, not added to the buyer's total.
        """
        groups: Dict[str, SellerGroup] = {}
        for item, listing in lines:
            group = groups.setdefault(listing.seller_id, SellerGroup(seller_id=listing.seller_id))
            group.lines.append((item, listing))
            group.subtotal += Decimal(listing.price) * item.quantity
            group.shipping += Decimal(listing.shipping_cost or 0)

        code_applied = False
        for group in groups.values():
            if promotion_code and not code_applied:
                try:
                    promotion = await promotion_service.lookup(db, group.seller_id, promotion_code)
                except PromotionError:
                    promotion = None
                if promotion is not None:
                    group.discount = promotion_service.validate(promotion, group.subtotal)
                    group.promotion = promotion
                    code_applied = True

            group.platform_fee = platform_fee_for(group.subtotal - group.discount)
            group.total = (group.subtotal + group.shipping - group.discount).quantize(CENT)

        if promotion_code and not code_applied:
            raise PromotionError(f"Promotion code {promotion_code} does not apply to this cart")
        return list(groups.values())

    # ── payment intent ─────────────────────────────────────────────────────

    async def create_payment_intent(
        self,
        db: AsyncSession,
        buyer_id: str,
        *,
        promotion_code: Optional[str] = None,
        shipping_address: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        _, lines = await self._cart_lines(db, buyer_id)
        groups = await self.build_groups(db, lines, promotion_code)
        amount = sum((g.total for g in groups), ZERO)

        metadata = {
            "kind": "checkout",
            "buyer_id": buyer_id,
            "seller_ids": ",".join(g.seller_id for g in groups),
            "platform_fee": str(sum((g.platform_fee for g in groups), ZERO)),
        }
        if promotion_code:
            metadata["promotion_code"] = promotion_code
        if shipping_address:
            metadata["shipping_address"] = json.dumps(shipping_address)

        try:
            intent = await self.gateway.create_payment_intent(
                amount_cents=to_cents(amount),
                metadata=metadata,
            )
        except PaymentsNotConfiguredError as e:
            raise CheckoutError("Stripe not configured", status_code=500) from e
        except PROCESSOR_ERRORS as e:
            log_fail(logger, f"Payment intent creation failed for buyer {buyer_id}: {e}")
            raise CheckoutError("Payment processor error", status_code=502) from e

        logger.info(f"Payment intent {intent['id']} for buyer {buyer_id}: {amount} across {len(groups)} seller(s)")
        return {
            "client_secret": intent.get("client_secret"),
            "payment_intent_id": intent["id"],
            "amount": amount,
            "groups": [g.as_dict() for g in groups],
        }

    # ── order creation ─────────────────────────────────────────────────────

    async def confirm_order(
        self,
        db: AsyncSession,
        buyer_id: str,
        payment_intent_id: str,
        *,
        shipping_address: Optional[Dict[str, Any]] = None,
        promotion_code: Optional[str] = None,
    ) -> List[Order]:
        """Browser-side confirmation after Stripe.js reports the payment succeeded."""
        try:
            intent = await self.gateway.retrieve_payment_intent(payment_intent_id)
        except PaymentsNotConfiguredError as e:
            raise CheckoutError("Stripe not configured", status_code=500) from e
        except PROCESSOR_ERRORS as e:
            log_fail(logger, f"Could not retrieve payment intent {payment_intent_id}: {e}")
            raise CheckoutError("Payment processor error", status_code=502) from e

        metadata = intent.get("metadata") or {}
        if metadata.get("buyer_id") != buyer_id:
            raise CheckoutError("Payment belongs to another buyer", status_code=403)
        if intent.get("status") != "succeeded":
            raise CheckoutError(f"Payment not completed (status {intent.get('status')})")

        return await self._create_orders(
            db,
            buyer_id,
            intent,
            shipping_address=shipping_address,
            promotion_code=promotion_code,
        )

    async def complete_payment(self, db: AsyncSession, payment_intent) -> List[Order]:
        """
        ``payment_intent.succeeded`` webhook: same as a browser confirmation.

        The buyer has already been charged here, so a checkout that can no
        longer be honoured (promotion used up, stock gone, cart changed) is
        refunded in full and the refund recorded. If the refund call fails
        the CheckoutError propagates, the webhook answers 5xx and Stripe
        redelivers the event.
        """
        buyer_id = (payment_intent.get("metadata") or {}).get("buyer_id")
        if not buyer_id:
            logger.info(f"Payment intent {payment_intent['id']} has no buyer, ignoring")
            return []
        try:
            return await self._create_orders(db, buyer_id, payment_intent)
        except (CheckoutError, PromotionError) as e:
            await db.rollback()
            log_fail(logger, f"Orders for payment {payment_intent['id']} not created: {e}")
            await self.refund_unfulfilled(db, buyer_id, payment_intent, reason=str(e))
            return []

    async def refund_unfulfilled(self, db: AsyncSession, buyer_id: str, intent, *, reason: str) -> CheckoutRefund:
        """Refund a succeeded payment that produced no orders. Safe to repeat."""
        payment_intent_id = intent["id"]
        existing = await db.get(CheckoutRefund, payment_intent_id)
        if existing is not None:
            return existing

        try:
            refund = await self.gateway.create_refund(
                payment_intent_id,
                idempotency_key=f"checkout-refund-{payment_intent_id}",
            )
        except PaymentsNotConfiguredError as e:
            raise CheckoutError("Stripe not configured", status_code=500) from e
        except PROCESSOR_ERRORS as e:
            log_fail(logger, f"Refund of unfulfilled payment {payment_intent_id} failed: {e}")
            raise CheckoutError("Payment processor error", status_code=502) from e

        record = CheckoutRefund(
            stripe_payment_intent_id=payment_intent_id,
            buyer_id=buyer_id,
            amount_cents=intent.get("amount"),
            reason=reason[:255],
            stripe_refund_id=refund["id"],
        )
        db.add(record)
        await db.flush()
        await notification_crud.notify(
            db, buyer_id, NotificationType.ORDER_REFUNDED, "Your payment was refunded",
            message=f"The order could not be placed: {reason}",
        )
        log_warn(logger, f"Refunded payment {payment_intent_id} ({refund['id']}) to buyer {buyer_id}")
        return record

    async def _create_orders(
        self,
        db: AsyncSession,
        buyer_id: str,
        intent,
        *,
        shipping_address: Optional[Dict[str, Any]] = None,
        promotion_code: Optional[str] = None,
    ) -> List[Order]:
        payment_intent_id = intent["id"]
        metadata = intent.get("metadata") or {}
        promotion_code = promotion_code or metadata.get("promotion_code")
        if shipping_address is None and metadata.get("shipping_address"):
            shipping_address = json.loads(metadata["shipping_address"])

        async with self.locks.hold(buyer_id):
            existing = await order_crud.get_by_payment_intent(db, payment_intent_id)
            if existing:
                logger.info(f"Orders for payment intent {payment_intent_id} already exist")
                return existing
            if await db.get(CheckoutRefund, payment_intent_id) is not None:
                raise CheckoutError("Payment was refunded because the order could not be placed", status_code=409)

            cart, lines = await self._cart_lines(db, buyer_id)
            groups = await self.build_groups(db, lines, promotion_code)

            amount = sum((g.total for g in groups), ZERO)
            if intent.get("amount") is not None and to_cents(amount) != intent["amount"]:
                log_fail(
                    logger,
                    f"Cart total {amount} no longer matches payment {payment_intent_id} "
                    f"({intent['amount']} cents)"
                )
                raise CheckoutError("Cart changed after payment was started", status_code=409)

            orders = []
            for group in groups:
                if group.promotion is not None:
                    await promotion_service.redeem(db, group.promotion, group.subtotal)

                order = Order(
                    buyer_id=buyer_id,
                    seller_id=group.seller_id,
                    subtotal=group.subtotal,
                    shipping_cost=group.shipping,
                    discount=group.discount,
                    platform_fee=group.platform_fee,
                    total=group.total,
                    promotion_code=group.promotion.code if group.promotion else None,
                    status=OrderStatus.PAID,
                    stripe_payment_intent_id=payment_intent_id,
                    shipping_address=shipping_address,
                    items=[
                        OrderItem(
                            listing_id=listing.id,
                            quantity=item.quantity,
                            price=listing.price,
                            title=listing.title,
                        )
                        for item, listing in group.lines
                    ],
                )
                db.add(order)

                for item, listing in group.lines:
                    if not await listing_crud.decrement_stock(db, listing.id, item.quantity):
                        raise CheckoutError(f"{listing.title} sold out during checkout", status_code=409)
                orders.append(order)

            await db.flush()
            for order in orders:
                await self._notify_seller(
                    db, order, NotificationType.NEW_ORDER, f"New order {order.id} for ${order.total}"
                )
            await cart_crud.clear(db, cart.id)
            await db.commit()

        log_success(logger, f"Created {len(orders)} order(s) for payment intent {payment_intent_id}")
        await self._send_order_emails(db, buyer_id, orders)
        return orders

    async def _send_order_emails(self, db: AsyncSession, buyer_id: str, orders: List[Order]) -> None:
        buyer = await user_crud.get(db, buyer_id)
        for order in orders:
            if buyer and buyer.email:
                await email_service.send_order_confirmation(buyer.email, order, order.items)
            seller = await db.get(Seller, order.seller_id)
            if seller is not None:
                owner = await user_crud.get(db, seller.user_id)
                if owner and owner.email:
                    await email_service.send_new_order_notification(owner.email, order, seller.shop_name)

    # ── fulfilment ─────────────────────────────────────────────────────────

    async def _seller_order(self, db: AsyncSession, seller: Seller, order_id: str) -> Order:
        order = await order_crud.get(db, order_id)
        if order is None or order.seller_id != seller.id:
            raise CheckoutError("Order not found", status_code=404)
        return order

    async def _notify_buyer(
        self,
        db: AsyncSession,
        order: Order,
        kind: NotificationType,
        title: str,
        send=None,
    ) -> None:
        await notification_crud.notify(db, order.buyer_id, kind, title, link=f"/orders/{order.id}")
        if send is None:
            return
        buyer = await user_crud.get(db, order.buyer_id)
        if buyer and buyer.email:
            await send(buyer.email, order)

    async def _notify_seller(self, db: AsyncSession, order: Order, kind: NotificationType, title: str) -> None:
        seller = await db.get(Seller, order.seller_id)
        if seller is not None:
            await notification_crud.notify(db, seller.user_id, kind, title, link=f"/seller/orders/{order.id}")

    async def add_tracking(
        self,
        db: AsyncSession,
        seller: Seller,
        order_id: str,
        *,
        tracking_number: str,
        carrier: str,
    ) -> Order:
        order = await self._seller_order(db, seller, order_id)
        if order.status not in (OrderStatus.PAID, OrderStatus.SHIPPED):
            raise CheckoutError(f"Cannot ship an order that is {order.status.value}", status_code=409)

        await order_crud.mark_shipped(db, order, tracking_number=tracking_number, carrier=carrier)
        await self._notify_buyer(
            db, order, NotificationType.ORDER_SHIPPED, f"Order {order.id} shipped via {carrier}",
            email_service.send_shipping_notification,
        )
        logger.info(f"Order {order.id} shipped via {carrier}")
        return order

    async def mark_delivered(self, db: AsyncSession, seller: Seller, order_id: str) -> Order:
        order = await self._seller_order(db, seller, order_id)
        if order.status not in (OrderStatus.PAID, OrderStatus.SHIPPED):
            raise CheckoutError(f"Cannot deliver an order that is {order.status.value}", status_code=409)

        await order_crud.mark_delivered(db, order)
        await self._notify_buyer(
            db, order, NotificationType.ORDER_DELIVERED, f"Order {order.id} was delivered",
            email_service.send_delivery_confirmation,
        )
        logger.info(f"Order {order.id} delivered")
        return order

    # ── disputes and refunds ───────────────────────────────────────────────

    async def open_dispute(
        self,
        db: AsyncSession,
        buyer_id: str,
        order_id: str,
        *,
        reason: str,
        description: Optional[str] = None,
    ) -> Dispute:
        order = await order_crud.get(db, order_id)
        if order is None or order.buyer_id != buyer_id:
            raise CheckoutError("Order not found", status_code=404)
        if order.status not in DISPUTABLE:
            raise CheckoutError(f"Cannot dispute an order that is {order.status.value}", status_code=409)
        if await dispute_crud.get_open_for_order(db, order.id):
            raise CheckoutError("A dispute is already open for this order", status_code=409)

        dispute = Dispute(order_id=order.id, opened_by=buyer_id, reason=reason, description=description)
        db.add(dispute)
        order.status = OrderStatus.DISPUTED
        await db.flush()
        await self._notify_seller(db, order, NotificationType.DISPUTE_OPENED, f"Dispute opened on order {order.id}")
        logger.info(f"Dispute {dispute.id} opened on order {order.id}")
        return dispute

    async def resolve_dispute(
        self,
        db: AsyncSession,
        dispute_id: str,
        admin_id: str,
        *,
        status: DisputeStatus,
        resolution_notes: Optional[str] = None,
    ) -> Dispute:
        dispute = await dispute_crud.get(db, dispute_id)
        if dispute is None:
            raise CheckoutError("Dispute not found", status_code=404)
        if dispute.status != DisputeStatus.OPEN:
            raise CheckoutError(f"Dispute already {dispute.status.value}", status_code=409)
        if status == DisputeStatus.OPEN:
            raise CheckoutError("Resolution must close the dispute")

        dispute.status = status
        dispute.resolution_notes = resolution_notes
        dispute.resolved_by = admin_id
        dispute.resolved_at = utcnow()

        # Buyer-side resolutions stay disputed until the refund goes through
        order = await order_crud.get(db, dispute.order_id)
        if order is not None and order.status == OrderStatus.DISPUTED and status != DisputeStatus.RESOLVED_BUYER:
            if order.delivered_at:
                order.status = OrderStatus.FULFILLED
            elif order.shipped_at:
                order.status = OrderStatus.SHIPPED
            else:
                order.status = OrderStatus.PAID

        await db.flush()
        if order is not None:
            await self._notify_buyer(
                db, order, NotificationType.DISPUTE_RESOLVED, f"Dispute on order {order.id} is {status.value}"
            )
        logger.info(f"Dispute {dispute.id} resolved as {status.value} by {admin_id}")
        return dispute

    async def refund_order(
        self,
        db: AsyncSession,
        order_id: str,
        *,
        amount: Optional[Decimal] = None,
        admin_id: Optional[str] = None,
    ) -> Order:
        order = await order_crud.get(db, order_id)
        if order is None:
            raise CheckoutError("Order not found", status_code=404)
        if order.status not in REFUNDABLE:
            raise CheckoutError(f"Cannot refund an order that is {order.status.value}", status_code=409)
        if not order.stripe_payment_intent_id:
            raise CheckoutError("Order has no payment to refund")
        if amount is not None and amount > order.total:
            raise CheckoutError("Refund exceeds order total")

        try:
            refund = await self.gateway.create_refund(
                order.stripe_payment_intent_id,
                amount_cents=to_cents(amount if amount is not None else order.total),
            )
        except PaymentsNotConfiguredError as e:
            raise CheckoutError("Stripe not configured", status_code=500) from e
        except PROCESSOR_ERRORS as e:
            log_fail(logger, f"Refund failed for order {order.id}: {e}")
            raise CheckoutError("Payment processor error", status_code=502) from e

        order.status = OrderStatus.REFUNDED
        await db.flush()
        await self._notify_buyer(db, order, NotificationType.ORDER_REFUNDED, f"Order {order.id} was refunded")
        log_success(logger, f"Refunded order {order.id} ({refund['id']}) by {admin_id}")
        return order


checkout_service = CheckoutService()
