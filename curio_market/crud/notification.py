"""CRUD operations for in-app notifications."""

from typing import Any, List, Optional
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.db.base import utcnow
from curio_market.models.notification import Notification, NotificationType


class CRUDNotification(CRUDBase[Notification, Any, Any]):

    async def notify(
        self,
        db: AsyncSession,
        user_id: str,
        kind: NotificationType,
        title: str,
        *,
        message: Optional[str] = None,
        link: Optional[str] = None
    ) -> Notification:
        return await self.create(
            db,
            obj_in={"type": kind, "title": title, "message": message, "link": link},
            user_id=user_id,
        )

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 20
    ) -> List[Notification]:
        """Newest first."""
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        result = await db.execute(
            stmt.order_by(Notification.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def mark_read(
        self,
        db: AsyncSession,
        notification: Notification
    ) -> Notification:
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await db.flush()
        return notification

    async def mark_all_read(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def unread_count(self, db: AsyncSession, user_id: str) -> int:
        return await db.scalar(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0


notification_crud = CRUDNotification(Notification)
