"""SQLAlchemy models for the Curio Market application."""

from curio_market.models.user import User, UserRole, AccountStatus, SubscriptionState
from curio_market.models.seller import Seller, SellerVerificationStatus
from curio_market.models.category import Category
from curio_market.models.listing import Listing, ListingImage, ListingState
from curio_market.models.cart import Cart, CartItem
from curio_market.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    Dispute,
    DisputeStatus,
    CheckoutRefund,
)
from curio_market.models.review import Review
from curio_market.models.favorite import Favorite, ShopFollow
from curio_market.models.message import MessageThread, Message
from curio_market.models.notification import Notification, NotificationType
from curio_market.models.moderation import Flag, FlagStatus, FlagTargetType
from curio_market.models.promotion import Promotion, DiscountType, Payout, PayoutStatus
from curio_market.models.verification import (
    VerificationRequest,
    VerificationType,
    VerificationStatus,
    IdentityVerificationSession,
    SellerReviewQueueItem,
    QueueStatus,
    QueueDecision,
    VerificationAuditLog,
)
from curio_market.models.web_session import WebSession
from curio_market.models.webhook_event import ProcessedWebhookEvent

__all__ = [
    "User",
    "UserRole",
    "AccountStatus",
    "SubscriptionState",
    "Seller",
    "SellerVerificationStatus",
    "Category",
    "Listing",
    "ListingImage",
    "ListingState",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Dispute",
    "DisputeStatus",
    "CheckoutRefund",
    "Review",
    "Favorite",
    "ShopFollow",
    "MessageThread",
    "Message",
    "Notification",
    "NotificationType",
    "Flag",
    "FlagStatus",
    "FlagTargetType",
    "Promotion",
    "DiscountType",
    "Payout",
    "PayoutStatus",
    "VerificationRequest",
    "VerificationType",
    "VerificationStatus",
    "IdentityVerificationSession",
    "SellerReviewQueueItem",
    "QueueStatus",
    "QueueDecision",
    "VerificationAuditLog",
    "WebSession",
    "ProcessedWebhookEvent",
]
