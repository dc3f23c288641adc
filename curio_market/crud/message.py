"""CRUD operations for message threads."""

from typing import Any, Dict, List, Optional
from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.crud.notification import notification_crud
from curio_market.db.base import utcnow
from curio_market.models.message import MessageThread, Message
from curio_market.models.notification import NotificationType


class CRUDMessageThread(CRUDBase[MessageThread, Any, Any]):
    """Threads are unique per (buyer, seller, listing)."""

    async def get_or_create(
        self,
        db: AsyncSession,
        *,
        buyer_id: str,
        seller_id: str,
        listing_id: Optional[str] = None,
        order_id: Optional[str] = None,
        subject: Optional[str] = None
    ) -> MessageThread:
        stmt = select(MessageThread).where(
            MessageThread.buyer_id == buyer_id,
            MessageThread.seller_id == seller_id,
        )
        if listing_id:
            stmt = stmt.where(MessageThread.listing_id == listing_id)
        else:
            stmt = stmt.where(MessageThread.listing_id.is_(None))
        thread = (await db.execute(stmt)).scalars().first()

        if thread is None:
            thread = MessageThread(
                buyer_id=buyer_id,
                seller_id=seller_id,
                listing_id=listing_id,
                order_id=order_id,
                subject=subject,
            )
            db.add(thread)
            await db.flush()
        return thread

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str
    ) -> List[MessageThread]:
        result = await db.execute(
            select(MessageThread)
            .where(or_(MessageThread.buyer_id == user_id, MessageThread.seller_id == user_id))
            .order_by(MessageThread.updated_at.desc())
        )
        return list(result.scalars().all())

    async def unread_counts(
        self,
        db: AsyncSession,
        user_id: str,
        thread_ids: List[str]
    ) -> Dict[str, int]:
        """Unread messages per thread, excluding the user's own messages."""
        if not thread_ids:
            return {}
        result = await db.execute(
            select(Message.thread_id, func.count(Message.id))
            .where(
                Message.thread_id.in_(thread_ids),
                Message.sender_id != user_id,
                Message.is_read.is_(False),
            )
            .group_by(Message.thread_id)
        )
        return {thread_id: count for thread_id, count in result.all()}

    async def total_unread(self, db: AsyncSession, user_id: str) -> int:
        threads = await self.list_for_user(db, user_id)
        counts = await self.unread_counts(db, user_id, [t.id for t in threads])
        return sum(counts.values())

    async def get_messages(
        self,
        db: AsyncSession,
        thread_id: str
    ) -> List[Message]:
        result = await db.execute(
            select(Message)
            .where(Message.thread_id == thread_id)
            .order_by(Message.created_at.asc())
        )
        return list(result.scalars().all())

    async def mark_read(
        self,
        db: AsyncSession,
        thread_id: str,
        reader_id: str
    ) -> None:
        await db.execute(
            update(Message)
            .where(
                Message.thread_id == thread_id,
                Message.sender_id != reader_id,
                Message.is_read.is_(False),
            )
            .values(is_read=True)
        )

    async def add_message(
        self,
        db: AsyncSession,
        thread: MessageThread,
        sender_id: str,
        content: str
    ) -> Message:
        message = Message(thread_id=thread.id, sender_id=sender_id, content=content)
        db.add(message)
        thread.updated_at = utcnow()
        await db.flush()
        await db.refresh(message)

        recipient_id = thread.seller_id if sender_id == thread.buyer_id else thread.buyer_id
        await notification_crud.notify(
            db,
            recipient_id,
            NotificationType.NEW_MESSAGE,
            "New message",
            message=content[:200],
            link=f"/messages/{thread.id}",
        )
        return message


thread_crud = CRUDMessageThread(MessageThread)
