"""Promotion code validation and redemption."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.promotion import promotion_crud
from curio_market.core.logging import get_logger
from curio_market.db.base import utcnow
from curio_market.models.promotion import Promotion, DiscountType

logger = get_logger(__name__)

CENT = Decimal("0.01")


class PromotionError(Exception):
    """Code cannot be applied to this order."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PromotionExhaustedError(PromotionError):
    status_code = 409

    def __init__(self, code: str):
        super().__init__(f"Promotion {code} has reached its usage limit")


def calculate_discount(promotion: Promotion, order_amount: Decimal) -> Decimal:
    """Discount for ``order_amount``, never more than the amount itself."""
    if promotion.discount_type == DiscountType.PERCENTAGE:
        discount = order_amount * Decimal(promotion.discount_value) / Decimal(100)
    else:
        discount = Decimal(promotion.discount_value)
    return min(discount, order_amount).quantize(CENT, rounding=ROUND_HALF_UP)


def validate(
    promotion: Promotion,
    order_amount: Decimal,
    now: Optional[datetime] = None,
) -> Decimal:
    """
    Check the promotion can be used for this order and return the discount.

    Raises PromotionError (inactive, outside its window, below minimum) or
    PromotionExhaustedError (cap reached). The cap check here is advisory;
    ``redeem`` enforces it atomically.
    """
    now = now or utcnow()
    if not promotion.is_active:
        raise PromotionError(f"Promotion {promotion.code} is not active")
    if promotion.starts_at and now < promotion.starts_at:
        raise PromotionError(f"Promotion {promotion.code} has not started")
    if promotion.ends_at and now > promotion.ends_at:
        raise PromotionError(f"Promotion {promotion.code} has expired")
    if promotion.min_order_amount is not None and order_amount < promotion.min_order_amount:
        raise PromotionError(
            f"Order must be at least {promotion.min_order_amount} to use {promotion.code}"
        )
    if promotion.max_uses is not None and promotion.current_uses >= promotion.max_uses:
        raise PromotionExhaustedError(promotion.code)
    return calculate_discount(promotion, order_amount)


async def lookup(db: AsyncSession, seller_id: str, code: str) -> Promotion:
    promotion = await promotion_crud.get_by_code(db, seller_id, code.strip())
    if promotion is None:
        raise PromotionError(f"Unknown promotion code {code}")
    return promotion


async def redeem(db: AsyncSession, promotion: Promotion, order_amount: Decimal) -> Decimal:
    """
    Validate and take one use of the promotion.

    The counter moves through a conditional UPDATE, so when two buyers race
    for the last use exactly one of them gets it.
    """
    discount = validate(promotion, order_amount)

    if not await promotion_crud.try_increment_usage(db, promotion.id):
        logger.info(f"Promotion {promotion.code} exhausted at redemption")
        raise PromotionExhaustedError(promotion.code)

    await db.refresh(promotion)
    logger.info(
        f"Redeemed promotion {promotion.code} "
        f"({promotion.current_uses}/{promotion.max_uses or 'unlimited'}), discount {discount}"
    )
    return discount
