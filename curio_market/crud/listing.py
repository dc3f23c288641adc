"""CRUD operations for listings and categories."""

import re
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select, or_, func, cast, delete, update, String
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.models.listing import Listing, ListingImage, ListingState
from curio_market.models.category import Category
from curio_market.models.cart import CartItem
from curio_market.models.favorite import Favorite
from curio_market.models.message import MessageThread
from curio_market.models.order import OrderItem
from curio_market.schemas.listing import ListingCreate, ListingUpdate, ListingImageIn
from curio_market.services.object_storage import normalize_image_url

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    slug = _SLUG_STRIP.sub("-", text.lower()).strip("-")
    return slug[:250] or "listing"


class CRUDListing(CRUDBase[Listing, ListingCreate, ListingUpdate]):
    """CRUD operations for Listing model."""

    async def unique_slug(
        self,
        db: AsyncSession,
        title: str,
        exclude_id: Optional[str] = None
    ) -> str:
        """Slug from the title, suffixed -1, -2, ... until unused."""
        base = slugify(title)
        stmt = select(Listing.slug).where(
            or_(Listing.slug == base, Listing.slug.like(f"{base}-%"))
        )
        if exclude_id:
            stmt = stmt.where(Listing.id != exclude_id)
        taken = set((await db.execute(stmt)).scalars().all())

        if base not in taken:
            return base
        n = 1
        while f"{base}-{n}" in taken:
            n += 1
        return f"{base}-{n}"

    async def create_for_seller(
        self,
        db: AsyncSession,
        *,
        obj_in: ListingCreate,
        seller_id: str
    ) -> Listing:
        data = obj_in.model_dump(exclude={"images"})
        listing = Listing(
            **data,
            seller_id=seller_id,
            slug=await self.unique_slug(db, obj_in.title),
            images=[self._image(img, i) for i, img in enumerate(obj_in.images)],
        )
        db.add(listing)
        await db.flush()
        await db.refresh(listing)
        return listing

    async def update_listing(
        self,
        db: AsyncSession,
        *,
        listing: Listing,
        obj_in: ListingUpdate
    ) -> Listing:
        data = obj_in.model_dump(exclude_unset=True)
        if "title" in data and data["title"] != listing.title:
            data["slug"] = await self.unique_slug(db, data["title"], exclude_id=listing.id)
        return await self.update(db, db_obj=listing, obj_in=data)

    @staticmethod
    def _image(image: ListingImageIn, index: int) -> ListingImage:
        return ListingImage(
            url=normalize_image_url(image.url),
            alt=image.alt,
            sort_order=image.sort_order or index,
        )

    async def replace_images(
        self,
        db: AsyncSession,
        listing: Listing,
        images: List[ListingImageIn]
    ) -> Listing:
        listing.images = [self._image(img, i) for i, img in enumerate(images)]
        await db.flush()
        await db.refresh(listing)
        return listing

    async def add_image(
        self,
        db: AsyncSession,
        listing: Listing,
        url: str,
        alt: Optional[str] = None
    ) -> Listing:
        """Append one image after the existing ones."""
        position = max((img.sort_order for img in listing.images), default=-1) + 1
        listing.images.append(ListingImage(url=normalize_image_url(url), alt=alt, sort_order=position))
        await db.flush()
        await db.refresh(listing)
        return listing

    async def get_by_slug(self, db: AsyncSession, slug: str) -> Optional[Listing]:
        result = await db.execute(select(Listing).where(Listing.slug == slug))
        return result.scalar_one_or_none()

    async def search(
        self,
        db: AsyncSession,
        *,
        query: Optional[str] = None,
        category_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        state: Optional[ListingState] = ListingState.PUBLISHED,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort: str = "newest",
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Listing], int]:
        """Filtered listings plus the total count before pagination."""
        conditions = []
        if state is not None:
            conditions.append(Listing.state == state)
        if query:
            term = f"%{query}%"
            conditions.append(
                or_(
                    Listing.title.ilike(term),
                    Listing.description.ilike(term),
                    Listing.species_or_material.ilike(term),
                    cast(Listing.tags, String).ilike(term),
                )
            )
        if category_id:
            # JSON array membership, portable across backends
            conditions.append(cast(Listing.category_ids, String).like(f'%"{category_id}"%'))
        if seller_id:
            conditions.append(Listing.seller_id == seller_id)
        if min_price is not None:
            conditions.append(Listing.price >= min_price)
        if max_price is not None:
            conditions.append(Listing.price <= max_price)

        total = await db.scalar(select(func.count(Listing.id)).where(*conditions))

        order_by = {
            "price_asc": Listing.price.asc(),
            "price_desc": Listing.price.desc(),
            "popular": Listing.views.desc(),
            "display": Listing.display_order.asc(),
        }.get(sort, Listing.created_at.desc())

        result = await db.execute(
            select(Listing)
            .where(*conditions)
            .order_by(order_by, Listing.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_featured(
        self,
        db: AsyncSession,
        limit: int = 12
    ) -> List[Listing]:
        """Newest published listings that have at least one image."""
        has_image = select(ListingImage.id).where(ListingImage.listing_id == Listing.id).exists()
        result = await db.execute(
            select(Listing)
            .where(Listing.state == ListingState.PUBLISHED, has_image)
            .order_by(Listing.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_seller(
        self,
        db: AsyncSession,
        seller_id: str
    ) -> List[Listing]:
        result = await db.execute(
            select(Listing)
            .where(Listing.seller_id == seller_id)
            .order_by(Listing.display_order.asc(), Listing.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_low_stock(
        self,
        db: AsyncSession,
        seller_id: str,
        threshold: int = 2
    ) -> List[Listing]:
        result = await db.execute(
            select(Listing)
            .where(
                Listing.seller_id == seller_id,
                Listing.state != ListingState.SUSPENDED,
                Listing.quantity <= threshold,
            )
            .order_by(Listing.quantity.asc())
        )
        return list(result.scalars().all())

    async def update_stock(
        self,
        db: AsyncSession,
        listing: Listing,
        quantity: int
    ) -> Listing:
        listing.quantity = quantity
        await db.flush()
        return listing

    async def decrement_stock(
        self,
        db: AsyncSession,
        listing_id: str,
        quantity: int
    ) -> bool:
        """Conditional decrement; False when stock is insufficient."""
        result = await db.execute(
            update(Listing)
            .where(Listing.id == listing_id, Listing.quantity >= quantity)
            .values(quantity=Listing.quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def update_display_order(
        self,
        db: AsyncSession,
        seller_id: str,
        items: List[Tuple[str, int]]
    ) -> int:
        """Bulk reorder; ids not owned by the seller are ignored."""
        updated = 0
        for listing_id, position in items:
            result = await db.execute(
                update(Listing)
                .where(Listing.id == listing_id, Listing.seller_id == seller_id)
                .values(display_order=position)
                .execution_options(synchronize_session="fetch")
            )
            updated += result.rowcount
        return updated

    async def bulk_update(
        self,
        db: AsyncSession,
        seller_id: str,
        items: List[Tuple[str, ListingUpdate]]
    ) -> List[Listing]:
        """
        Apply several listing edits at once.

        Listings the seller does not own are skipped, as are suspended
        listings and edits that would suspend one. Returns the listings
        that were changed.
        """
        updated = []
        for listing_id, changes in items:
            listing = await self.get(db, listing_id)
            if listing is None or listing.seller_id != seller_id:
                continue
            if listing.state == ListingState.SUSPENDED or changes.state == ListingState.SUSPENDED:
                continue
            updated.append(await self.update_listing(db, listing=listing, obj_in=changes))
        return updated

    async def increment_views(self, db: AsyncSession, listing: Listing) -> None:
        # Keep updated_at for real edits only
        await db.execute(
            update(Listing)
            .where(Listing.id == listing.id)
            .values(views=Listing.views + 1, updated_at=Listing.updated_at)
        )

    async def has_order_history(self, db: AsyncSession, listing_id: str) -> bool:
        found = await db.scalar(
            select(OrderItem.id).where(OrderItem.listing_id == listing_id).limit(1)
        )
        return found is not None

    async def remove(
        self,
        db: AsyncSession,
        listing: Listing
    ) -> str:
        """
        Delete a listing.

        Listings referenced by orders are archived to draft instead.
        Returns "archived" or "deleted".
        """
        if await self.has_order_history(db, listing.id):
            listing.state = ListingState.DRAFT
            await db.flush()
            return "archived"

        await db.execute(delete(CartItem).where(CartItem.listing_id == listing.id))
        await db.execute(delete(Favorite).where(Favorite.listing_id == listing.id))
        await db.execute(
            update(MessageThread)
            .where(MessageThread.listing_id == listing.id)
            .values(listing_id=None)
        )
        await db.delete(listing)
        await db.flush()
        return "deleted"

    async def set_state(
        self,
        db: AsyncSession,
        listing: Listing,
        state: ListingState
    ) -> Listing:
        listing.state = state
        await db.flush()
        return listing


class CRUDCategory(CRUDBase[Category, Any, Any]):
    """CRUD operations for Category model."""

    async def get_all(self, db: AsyncSession) -> List[Category]:
        result = await db.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    async def get_by_slug(self, db: AsyncSession, slug: str) -> Optional[Category]:
        result = await db.execute(select(Category).where(Category.slug == slug))
        return result.scalar_one_or_none()

    async def get_counts(self, db: AsyncSession) -> List[Dict[str, Any]]:
        """Published listing count per category, from the denormalised id arrays."""
        rows = await db.execute(
            select(Listing.category_ids).where(Listing.state == ListingState.PUBLISHED)
        )
        counter: Counter = Counter()
        for category_ids in rows.scalars().all():
            counter.update(set(category_ids or []))

        return [
            {
                "category_id": category.id,
                "slug": category.slug,
                "name": category.name,
                "count": counter.get(category.id, 0),
            }
            for category in await self.get_all(db)
        ]


listing_crud = CRUDListing(Listing)
category_crud = CRUDCategory(Category)
