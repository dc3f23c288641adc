"""In-app notification endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.security import require_user
from curio_market.crud.notification import notification_crud
from curio_market.db.session import get_db
from curio_market.models.user import User
from curio_market.schemas.notification import NotificationCount, NotificationResponse

router = APIRouter()


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await notification_crud.list_for_user(db, user.id, unread_only=unread_only, limit=limit)


@router.get("/unread-count", response_model=NotificationCount)
async def unread_count(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return NotificationCount(unread=await notification_crud.unread_count(db, user.id))


@router.post("/read-all")
async def mark_all_read(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return {"updated": await notification_crud.mark_all_read(db, user.id)}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await notification_crud.get(db, notification_id)
    if notification is None or notification.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return await notification_crud.mark_read(db, notification)
