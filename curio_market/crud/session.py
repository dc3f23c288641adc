"""Database-backed web session store for the session cookie."""

import secrets
from datetime import timedelta
from typing import Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.config import settings
from curio_market.db.base import utcnow
from curio_market.models.web_session import WebSession


class CRUDWebSession:

    async def get_active(self, db: AsyncSession, sid: str) -> Optional[WebSession]:
        """Session by id, or None if unknown or expired."""
        result = await db.execute(select(WebSession).where(WebSession.sid == sid))
        session = result.scalar_one_or_none()
        if session is None or session.is_expired():
            return None
        return session

    async def create(
        self,
        db: AsyncSession,
        *,
        user_id: Optional[str] = None,
        auth_state: Optional[str] = None
    ) -> WebSession:
        session = WebSession(
            sid=secrets.token_urlsafe(32),
            user_id=user_id,
            auth_state=auth_state,
            data={},
            expire=utcnow() + timedelta(days=settings.SESSION_TTL_DAYS),
        )
        db.add(session)
        await db.flush()
        return session

    async def destroy(self, db: AsyncSession, sid: str) -> None:
        await db.execute(delete(WebSession).where(WebSession.sid == sid))

    async def purge_expired(self, db: AsyncSession) -> int:
        result = await db.execute(delete(WebSession).where(WebSession.expire <= utcnow()))
        return result.rowcount


session_crud = CRUDWebSession()
