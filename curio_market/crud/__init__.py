"""CRUD operations for database models."""

from curio_market.crud.base import CRUDBase
from curio_market.crud.user import user_crud
from curio_market.crud.seller import seller_crud
from curio_market.crud.listing import listing_crud, category_crud
from curio_market.crud.cart import cart_crud
from curio_market.crud.order import order_crud, dispute_crud
from curio_market.crud.review import review_crud
from curio_market.crud.favorite import favorite_crud, follow_crud
from curio_market.crud.message import thread_crud
from curio_market.crud.notification import notification_crud
from curio_market.crud.promotion import promotion_crud
from curio_market.crud.moderation import flag_crud

__all__ = [
    "CRUDBase",
    "user_crud",
    "seller_crud",
    "listing_crud",
    "category_crud",
    "cart_crud",
    "order_crud",
    "dispute_crud",
    "review_crud",
    "favorite_crud",
    "follow_crud",
    "thread_crud",
    "notification_crud",
    "promotion_crud",
    "flag_crud",
]
