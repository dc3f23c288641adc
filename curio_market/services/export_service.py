"""Catalog exports for ad platforms and spreadsheets."""

import csv
import io
from decimal import Decimal
from typing import Any, Dict, List

from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.config import settings
from curio_market.core.logging import get_logger
from curio_market.models.listing import Listing, ListingState
from curio_market.models.seller import Seller
from curio_market.services.object_storage import normalize_image_url

logger = get_logger(__name__)

GOOGLE_COLUMNS = [
    "id", "title", "description", "link", "image_link", "additional_image_link",
    "availability", "price", "condition", "brand", "mpn", "identifier_exists",
    "shipping", "product_type",
]

FACEBOOK_COLUMNS = [
    "id", "title", "description", "availability", "condition", "price",
    "link", "image_link", "brand", "quantity_to_sell_on_facebook", "mpn",
]

XLSX_COLUMNS = [
    "id", "title", "shop", "state", "price", "quantity", "shipping_cost",
    "sku", "mpn", "condition", "species_or_material", "provenance", "tags",
    "views", "link", "image_link", "created_at",
]


def _condition(value: str) -> str:
    """Ad platforms accept new, refurbished or used."""
    value = (value or "").lower()
    if "refurb" in value:
        return "refurbished"
    if value.startswith("new"):
        return "new"
    return "used"


def _absolute(path: str) -> str:
    if path.startswith("http"):
        return path
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}{path}"


async def load_catalog(db: AsyncSession, include_unpublished: bool = False) -> List[Dict[str, Any]]:
    """Flatten listings with their shop name and normalized image links."""
    stmt = (
        select(Listing, Seller.shop_name)
        .join(Seller, Seller.id == Listing.seller_id)
        .order_by(Listing.created_at.asc())
    )
    if not include_unpublished:
        stmt = stmt.where(Listing.state == ListingState.PUBLISHED, Seller.is_active.is_(True))
    result = await db.execute(stmt)

    rows = []
    for listing, shop_name in result.all():
        images = [
            _absolute(normalize_image_url(image.url))
            for image in sorted(listing.images, key=lambda i: i.sort_order)
        ]
        rows.append({
            "listing": listing,
            "shop_name": shop_name,
            "link": f"{settings.PUBLIC_BASE_URL.rstrip('/')}/product/{listing.slug}",
            "images": images,
        })
    logger.info(f"Loaded {len(rows)} listings for export")
    return rows


def _price(amount: Decimal) -> str:
    return f"{Decimal(amount):.2f} {settings.SELLER_SUBSCRIPTION_CURRENCY.upper()}"


def _write_csv(columns: List[str], records: List[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    writer.writerows(records)
    return buffer.getvalue()


def google_shopping_csv(rows: List[Dict[str, Any]]) -> str:
    records = []
    for row in rows:
        listing = row["listing"]
        images = row["images"]
        records.append({
            "id": listing.id,
            "title": listing.title[:150],
            "description": (listing.description or listing.title)[:5000],
            "link": row["link"],
            "image_link": images[0] if images else "",
            "additional_image_link": ",".join(images[1:11]),
            "availability": "in_stock" if listing.quantity > 0 else "out_of_stock",
            "price": _price(listing.price),
            "condition": _condition(listing.condition),
            "brand": row["shop_name"],
            "mpn": listing.mpn or "",
            "identifier_exists": "yes" if listing.mpn else "no",
            "shipping": f"US:::{_price(listing.shipping_cost or 0)}",
            "product_type": listing.species_or_material or "",
        })
    return _write_csv(GOOGLE_COLUMNS, records)


def facebook_catalog_csv(rows: List[Dict[str, Any]]) -> str:
    records = []
    for row in rows:
        listing = row["listing"]
        images = row["images"]
        records.append({
            "id": listing.id,
            "title": listing.title[:200],
            "description": (listing.description or listing.title)[:9999],
            "availability": "in stock" if listing.quantity > 0 else "out of stock",
            "condition": _condition(listing.condition),
            "price": _price(listing.price),
            "link": row["link"],
            "image_link": images[0] if images else "",
            "brand": row["shop_name"],
            "quantity_to_sell_on_facebook": listing.quantity,
            "mpn": listing.mpn or "",
        })
    return _write_csv(FACEBOOK_COLUMNS, records)


def catalog_xlsx(rows: List[Dict[str, Any]]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Listings"
    sheet.append(XLSX_COLUMNS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for row in rows:
        listing = row["listing"]
        sheet.append([
            listing.id,
            listing.title,
            row["shop_name"],
            listing.state.value,
            float(listing.price),
            listing.quantity,
            float(listing.shipping_cost or 0),
            listing.sku or "",
            listing.mpn or "",
            listing.condition or "",
            listing.species_or_material or "",
            listing.provenance or "",
            ", ".join(listing.tags or []),
            listing.views or 0,
            row["link"],
            row["images"][0] if row["images"] else "",
            listing.created_at.replace(tzinfo=None) if listing.created_at else None,
        ])
    sheet.freeze_panes = "A2"

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
