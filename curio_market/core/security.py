"""Security utilities: local JWTs and request authentication dependencies."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Any
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2AuthorizationCodeBearer
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.config import settings
from curio_market.crud.seller import seller_crud
from curio_market.crud.session import session_crud
from curio_market.crud.user import user_crud
from curio_market.db.session import get_db
from curio_market.models.user import User
from curio_market.models.seller import Seller

# Bearer tokens are issued at the end of the OIDC login flow
oauth2_scheme = OAuth2AuthorizationCodeBearer(
    authorizationUrl=f"{settings.API_PREFIX}/auth/login",
    tokenUrl=f"{settings.API_PREFIX}/auth/callback",
    refreshUrl=f"{settings.API_PREFIX}/auth/refresh",
    auto_error=False  # Fall back to the session cookie
)


def create_access_token(
    subject: str,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """Create a JWT access token signed with the session secret."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "type": "access"
    }

    if additional_claims:
        to_encode.update(additional_claims)

    return jwt.encode(
        to_encode,
        settings.SESSION_SECRET,
        algorithm=settings.ALGORITHM
    )


def create_refresh_token(subject: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        days=settings.REFRESH_TOKEN_EXPIRE_DAYS
    )

    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "type": "refresh"
    }

    return jwt.encode(
        to_encode,
        settings.SESSION_SECRET,
        algorithm=settings.ALGORITHM
    )


def decode_token(token: str, expected_type: str = "access") -> Optional[dict]:
    """Decode and validate a JWT. Returns None if invalid, expired or of the wrong type."""
    try:
        payload = jwt.decode(
            token,
            settings.SESSION_SECRET,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None

    if payload.get("type") != expected_type or not payload.get("sub"):
        return None
    return payload


async def get_current_user_id(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[str]:
    """
    Resolve the caller's user id.

    A Bearer token wins; otherwise the session cookie is looked up.
    Returns None for anonymous callers.
    """
    if token:
        payload = decode_token(token)
        if payload:
            return payload["sub"]

    sid = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if sid:
        session = await session_crud.get_active(db, sid)
        if session and session.user_id:
            return session.user_id

    return None


async def get_current_user(
    user_id: Optional[str] = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """The signed-in User, or None. Banned accounts are refused outright."""
    if not user_id:
        return None

    user = await user_crud.get(db, user_id)
    if user is not None and user.is_banned:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account suspended",
        )
    return user


async def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    """
    Require authentication - raises HTTPException if not authenticated.
    Use this dependency for protected endpoints.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def require_seller(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> Seller:
    """The caller's seller profile; 403 for users without a shop."""
    seller = await seller_crud.get_by_user_id(db, user.id)
    if seller is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Seller profile required",
        )
    return seller
