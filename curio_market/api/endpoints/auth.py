"""Authentication endpoints - OIDC login flow, tokens and the current user."""

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import service_error, set_session_cookie
from curio_market.core.config import settings
from curio_market.core.logging import get_logger
from curio_market.core.security import require_user
from curio_market.crud.user import user_crud
from curio_market.db.session import get_db
from curio_market.models.user import User
from curio_market.schemas.user import (
    RefreshTokenRequest,
    Token,
    TokenValidateRequest,
    TokenValidateResponse,
    UserResponse,
    UserUpdate,
)
from curio_market.services.auth_service import AuthError, auth_service

logger = get_logger(__name__)
router = APIRouter()


@router.get("/login")
async def login(request: Request, db: AsyncSession = Depends(get_db)):
    """Start the OIDC authorization-code flow."""
    try:
        url, session = await auth_service.begin_login(
            db,
            request.url.hostname,
            sid=request.cookies.get(settings.SESSION_COOKIE_NAME),
        )
    except AuthError as e:
        raise service_error(e)

    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    set_session_cookie(response, session.sid)
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Provider redirect target.

    Browsers keep the session cookie; clients that drop cookies read the
    bearer token from the ``access_token`` query parameter on ``/``.
    """
    try:
        _, session, tokens = await auth_service.complete_login(
            db,
            sid=request.cookies.get(settings.SESSION_COOKIE_NAME),
            code=code,
            state=state,
            host=request.url.hostname,
        )
    except AuthError as e:
        logger.warning(f"Login callback failed: {e.message}")
        raise service_error(e)

    query = urlencode({"access_token": tokens["access_token"], "auth_success": "true"})
    response = RedirectResponse(f"/?{query}", status_code=status.HTTP_302_FOUND)
    set_session_cookie(response, session.sid)
    return response


@router.get("/logout")
async def logout(request: Request, db: AsyncSession = Depends(get_db)):
    target = await auth_service.logout(
        db,
        request.cookies.get(settings.SESSION_COOKIE_NAME),
        request.url.hostname,
    )
    response = RedirectResponse(target, status_code=status.HTTP_302_FOUND)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, domain=settings.SESSION_COOKIE_DOMAIN)
    return response


@router.post("/validate", response_model=TokenValidateResponse)
async def validate_token(body: TokenValidateRequest, db: AsyncSession = Depends(get_db)):
    user = await auth_service.validate_token(db, body.token)
    if user is None:
        return TokenValidateResponse(valid=False)
    return TokenValidateResponse(valid=True, user=UserResponse.model_validate(user))


@router.post("/refresh", response_model=Token)
async def refresh_token(body: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await auth_service.refresh(db, body.refresh_token)
    except AuthError as e:
        raise service_error(e)


@router.get("/user", response_model=UserResponse)
async def get_me(user: User = Depends(require_user)):
    return user


@router.patch("/user", response_model=UserResponse)
async def update_me(
    body: UserUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.model_dump(exclude_unset=True):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if body.phone_number is not None and body.phone_number != user.phone_number:
        # A changed number has to be verified again
        user.phone_verified = False
    return await user_crud.update(db, db_obj=user, obj_in=body)
