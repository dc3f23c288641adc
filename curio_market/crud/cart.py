"""CRUD operations for carts."""

from typing import List, Optional, Tuple
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.models.cart import Cart, CartItem
from curio_market.models.listing import Listing


class CRUDCart(CRUDBase[Cart, Cart, Cart]):
    """Carts are keyed by user id, or by web session id for anonymous visitors."""

    async def get_for_owner(
        self,
        db: AsyncSession,
        *,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> Optional[Cart]:
        if user_id:
            stmt = select(Cart).where(Cart.user_id == user_id)
        elif session_id:
            stmt = select(Cart).where(Cart.session_id == session_id, Cart.user_id.is_(None))
        else:
            return None
        result = await db.execute(stmt.order_by(Cart.created_at))
        return result.scalars().first()

    async def get_or_create(
        self,
        db: AsyncSession,
        *,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> Cart:
        cart = await self.get_for_owner(db, user_id=user_id, session_id=session_id)
        if cart is None:
            cart = Cart(user_id=user_id, session_id=None if user_id else session_id)
            db.add(cart)
            await db.flush()
        return cart

    async def get_items(
        self,
        db: AsyncSession,
        cart_id: str
    ) -> List[Tuple[CartItem, Optional[Listing]]]:
        """Items joined with their listings; a vanished listing comes back as None."""
        result = await db.execute(
            select(CartItem, Listing)
            .outerjoin(Listing, Listing.id == CartItem.listing_id)
            .where(CartItem.cart_id == cart_id)
            .order_by(CartItem.created_at)
        )
        return [(item, listing) for item, listing in result.all()]

    async def get_item(
        self,
        db: AsyncSession,
        cart_id: str,
        item_id: str
    ) -> Optional[CartItem]:
        result = await db.execute(
            select(CartItem).where(CartItem.id == item_id, CartItem.cart_id == cart_id)
        )
        return result.scalar_one_or_none()

    async def add_item(
        self,
        db: AsyncSession,
        cart: Cart,
        listing_id: str,
        quantity: int = 1
    ) -> CartItem:
        """Adding a listing already in the cart increases its quantity."""
        result = await db.execute(
            select(CartItem).where(CartItem.cart_id == cart.id, CartItem.listing_id == listing_id)
        )
        item = result.scalar_one_or_none()
        if item:
            item.quantity += quantity
        else:
            item = CartItem(cart_id=cart.id, listing_id=listing_id, quantity=quantity)
            db.add(item)
        await db.flush()
        return item

    async def clear(self, db: AsyncSession, cart_id: str) -> None:
        await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))

    async def merge_session_cart(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        user_id: str
    ) -> Optional[Cart]:
        """Fold an anonymous cart into the user's cart after sign-in."""
        anon = await self.get_for_owner(db, session_id=session_id)
        if anon is None:
            return None

        cart = await self.get_or_create(db, user_id=user_id)
        for item, _ in await self.get_items(db, anon.id):
            await self.add_item(db, cart, item.listing_id, item.quantity)
        await self.clear(db, anon.id)
        await db.delete(anon)
        await db.flush()
        return cart


cart_crud = CRUDCart(Cart)
