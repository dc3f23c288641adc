"""Cart endpoints. Signed-out visitors get a cart tied to their web session."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import anonymous_session_id
from curio_market.core.security import get_current_user
from curio_market.crud.cart import cart_crud
from curio_market.crud.listing import listing_crud
from curio_market.db.session import get_db
from curio_market.models.cart import Cart
from curio_market.models.listing import ListingState
from curio_market.models.user import User
from curio_market.schemas.cart import (
    CartAdd,
    CartItemResponse,
    CartItemUpdate,
    CartListing,
    CartResponse,
)

router = APIRouter()


async def current_cart(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
) -> Cart:
    if user is not None:
        return await cart_crud.get_or_create(db, user_id=user.id)
    sid = await anonymous_session_id(request, response, db)
    return await cart_crud.get_or_create(db, session_id=sid)


async def cart_response(db: AsyncSession, cart: Cart) -> CartResponse:
    items = []
    subtotal = Decimal("0")
    count = 0
    for item, listing in await cart_crud.get_items(db, cart.id):
        items.append(
            CartItemResponse(
                id=item.id,
                listing_id=item.listing_id,
                quantity=item.quantity,
                listing=CartListing.model_validate(listing) if listing is not None else None,
            )
        )
        count += item.quantity
        if listing is not None:
            subtotal += Decimal(listing.price) * item.quantity
    return CartResponse(id=cart.id, items=items, subtotal=subtotal, item_count=count)


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_db),
):
    return await cart_response(db, cart)


@router.post("/cart/add", response_model=CartResponse)
async def add_to_cart(
    body: CartAdd,
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_db),
):
    listing = await listing_crud.get(db, body.listing_id)
    if listing is None or listing.state != ListingState.PUBLISHED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")

    existing = {item.listing_id: item.quantity for item, _ in await cart_crud.get_items(db, cart.id)}
    if existing.get(listing.id, 0) + body.quantity > listing.quantity:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Only {listing.quantity} in stock",
        )

    await cart_crud.add_item(db, cart, listing.id, body.quantity)
    return await cart_response(db, cart)


@router.patch("/cart/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: str,
    body: CartItemUpdate,
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_db),
):
    item = await cart_crud.get_item(db, cart.id, item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart item not found")

    listing = await listing_crud.get(db, item.listing_id)
    if listing is not None and body.quantity > listing.quantity:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Only {listing.quantity} in stock",
        )

    item.quantity = body.quantity
    await db.flush()
    return await cart_response(db, cart)


@router.delete("/cart/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: str,
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_db),
):
    item = await cart_crud.get_item(db, cart.id, item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart item not found")
    await db.delete(item)
    await db.flush()
    return await cart_response(db, cart)
