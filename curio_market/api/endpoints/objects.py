"""Image upload and download through the object store."""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.endpoints.listings import owned_listing
from curio_market.core.logging import get_logger
from curio_market.core.security import require_user
from curio_market.crud.listing import listing_crud
from curio_market.crud.review import review_crud
from curio_market.db.session import get_db
from curio_market.models.user import User
from curio_market.schemas.listing import ImageUrlUpdate, ListingImageUpload, ListingResponse
from curio_market.schemas.review import ReviewImageUpload, ReviewResponse
from curio_market.schemas.user import UserResponse
from curio_market.services.cache_service import cache
from curio_market.services.object_storage import (
    ObjectNotFoundError,
    ObjectStorageError,
    normalize_image_url,
    object_storage,
)

logger = get_logger(__name__)

# Mounted under the API prefix
router = APIRouter()

# Mounted at the site root so stored `/objects/...` paths resolve as-is
public_router = APIRouter()

MAX_REVIEW_IMAGES = 10


@router.post("/objects/upload")
async def request_upload_url(_: User = Depends(require_user)):
    """
    Presigned PUT URL for a new upload.

    The browser uploads straight to the bucket, then registers
    ``object_path`` through one of the image endpoints below.
    """
    try:
        return await object_storage.get_upload_url()
    except ObjectStorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.put("/listing-images", response_model=ListingResponse)
async def attach_listing_image(
    body: ListingImageUpload,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    listing = await owned_listing(db, body.listing_id, user)
    listing = await listing_crud.add_image(db, listing, body.image_url, body.alt)
    await cache.invalidate_catalog()
    return listing


@router.put("/profile-image", response_model=UserResponse)
async def set_profile_image(
    body: ImageUrlUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    user.profile_image_url = normalize_image_url(body.image_url)
    await db.flush()
    return user


@router.put("/review-images", response_model=ReviewResponse)
async def attach_review_image(
    body: ReviewImageUpload,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    review = await review_crud.get(db, body.review_id)
    if review is None or review.buyer_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
    if len(review.images or []) >= MAX_REVIEW_IMAGES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Too many images")

    # JSON columns only notice reassignment
    review.images = [*(review.images or []), normalize_image_url(body.image_url)]
    await db.flush()
    return review


@public_router.get("/objects/{object_path:path}")
async def serve_object(object_path: str):
    """Redirect to a short-lived signed URL for the stored object."""
    try:
        url = await object_storage.get_download_url(object_path)
    except ObjectNotFoundError as e:
        logger.warning(f"Object lookup failed for {object_path}: {e}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    except ObjectStorageError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)
