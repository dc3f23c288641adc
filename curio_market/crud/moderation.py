"""CRUD operations for content flags."""

from typing import Any, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.db.base import utcnow
from curio_market.models.moderation import Flag, FlagStatus


class CRUDFlag(CRUDBase[Flag, Any, Any]):

    async def list_by_status(
        self,
        db: AsyncSession,
        status: Optional[FlagStatus] = FlagStatus.PENDING,
        *,
        skip: int = 0,
        limit: int = 50
    ) -> List[Flag]:
        stmt = select(Flag)
        if status:
            stmt = stmt.where(Flag.status == status)
        result = await db.execute(
            stmt.order_by(Flag.created_at.asc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def moderate(
        self,
        db: AsyncSession,
        flag: Flag,
        *,
        status: FlagStatus,
        moderator_id: str,
        notes: Optional[str] = None
    ) -> Flag:
        flag.status = status
        flag.moderator_notes = notes
        flag.resolved_by = moderator_id
        flag.resolved_at = utcnow()
        await db.flush()
        return flag


flag_crud = CRUDFlag(Flag)
