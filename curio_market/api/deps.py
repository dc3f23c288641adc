"""Shared helpers for endpoint modules."""

from fastapi import HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.config import settings
from curio_market.crud.session import session_crud
from curio_market.services.verification_service import ClientInfo


def client_info(request: Request) -> ClientInfo:
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return ClientInfo(ip_address=ip, user_agent=request.headers.get("user-agent"))


def service_error(exc) -> HTTPException:
    """HTTPException for a service-layer error carrying message and status_code."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def set_session_cookie(response: Response, sid: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        sid,
        max_age=settings.SESSION_TTL_DAYS * 24 * 3600,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        domain=settings.SESSION_COOKIE_DOMAIN,
    )


async def anonymous_session_id(request: Request, response: Response, db: AsyncSession) -> str:
    """Session id for a signed-out visitor, starting a session if needed."""
    sid = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if sid and await session_crud.get_active(db, sid):
        return sid
    session = await session_crud.create(db)
    set_session_cookie(response, session.sid)
    return session.sid
