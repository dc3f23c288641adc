"""OIDC sign-in against the external identity provider.

Authorization-code flow:
  login     → random state stored on a fresh web session, redirect to provider
  callback  → state checked, code exchanged, claims read, user upserted,
              session bound, redirect home with a local bearer token
  logout    → session destroyed, redirect to the provider's end-session page
"""

import secrets
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.config import settings
from curio_market.core.logging import get_logger
from curio_market.core.security import create_access_token, create_refresh_token, decode_token
from curio_market.crud.cart import cart_crud
from curio_market.crud.session import session_crud
from curio_market.crud.user import user_crud
from curio_market.models.user import User
from curio_market.models.web_session import WebSession

logger = get_logger(__name__)

SCOPES = "openid email profile offline_access"


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthService:
    """Talks to the identity provider and manages web sessions."""

    def __init__(self):
        self._discovery: Optional[Dict[str, Any]] = None
        self._discovery_fetched_at: float = 0.0

    # ── provider metadata ─────────────────────────────────────────────────

    async def get_discovery(self) -> Dict[str, Any]:
        """OpenID discovery document, cached for OIDC_DISCOVERY_TTL_SECONDS."""
        age = time.monotonic() - self._discovery_fetched_at
        if self._discovery is not None and age < settings.OIDC_DISCOVERY_TTL_SECONDS:
            return self._discovery

        url = f"{settings.ISSUER_URL.rstrip('/')}/.well-known/openid-configuration"
        try:
            async with httpx.AsyncClient(timeout=settings.OIDC_TIMEOUT_SECONDS) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                self._discovery = resp.json()
        except httpx.HTTPError as e:
            logger.error(f"OIDC discovery failed for {url}: {e}")
            raise AuthError("Identity provider unavailable", status_code=502) from e

        self._discovery_fetched_at = time.monotonic()
        logger.info(f"Loaded OIDC discovery from {settings.ISSUER_URL}")
        return self._discovery

    def redirect_uri(self, host: Optional[str]) -> str:
        """
        Callback URL for this request.

        Only hosts listed in REPLIT_DOMAINS are trusted; anything else gets
        the first configured domain.
        """
        domains = settings.replit_domains_list
        domain = host if host in domains else (domains[0] if domains else host)
        scheme = "http" if domain and domain.startswith("localhost") else "https"
        return f"{scheme}://{domain}{settings.API_PREFIX}/auth/callback"

    # ── login / callback ──────────────────────────────────────────────────

    async def begin_login(
        self,
        db: AsyncSession,
        host: Optional[str],
        sid: Optional[str] = None,
    ) -> Tuple[str, WebSession]:
        """Authorization URL plus the web session holding the state.

        An existing anonymous session is reused so its cart survives sign-in.
        """
        if not settings.REPL_ID:
            raise AuthError("Authentication not configured", status_code=500)

        discovery = await self.get_discovery()
        state = secrets.token_urlsafe(24)
        session = await session_crud.get_active(db, sid) if sid else None
        if session is None:
            session = await session_crud.create(db, auth_state=state)
        else:
            session.auth_state = state
            await db.flush()

        params = {
            "client_id": settings.REPL_ID,
            "response_type": "code",
            "scope": SCOPES,
            "redirect_uri": self.redirect_uri(host),
            "state": state,
            "prompt": "login consent",
        }
        return f"{discovery['authorization_endpoint']}?{urlencode(params)}", session

    async def _exchange_code(self, discovery: Dict[str, Any], code: str, redirect_uri: str) -> Dict[str, Any]:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": settings.REPL_ID,
        }
        if settings.REPL_SECRET:
            data["client_secret"] = settings.REPL_SECRET

        async with httpx.AsyncClient(timeout=settings.OIDC_TIMEOUT_SECONDS) as client:
            resp = await client.post(discovery["token_endpoint"], data=data)
            resp.raise_for_status()
            return resp.json()

    async def _claims(self, discovery: Dict[str, Any], tokens: Dict[str, Any]) -> Dict[str, Any]:
        """Userinfo when the provider has it, otherwise the ID token's claims."""
        claims: Dict[str, Any] = {}
        if tokens.get("id_token"):
            # The token came straight from the token endpoint over TLS
            claims.update(jwt.get_unverified_claims(tokens["id_token"]))

        userinfo_url = discovery.get("userinfo_endpoint")
        if userinfo_url and tokens.get("access_token"):
            async with httpx.AsyncClient(timeout=settings.OIDC_TIMEOUT_SECONDS) as client:
                resp = await client.get(
                    userinfo_url,
                    headers={"Authorization": f"Bearer {tokens['access_token']}"},
                )
                resp.raise_for_status()
                claims.update(resp.json())
        return claims

    async def complete_login(
        self,
        db: AsyncSession,
        *,
        sid: Optional[str],
        code: Optional[str],
        state: Optional[str],
        host: Optional[str],
    ) -> Tuple[User, WebSession, Dict[str, str]]:
        session = await session_crud.get_active(db, sid) if sid else None
        if session is None or not session.auth_state or not state:
            raise AuthError("Login session expired")
        if not secrets.compare_digest(session.auth_state.encode(), state.encode()):
            raise AuthError("Invalid login state")
        if not code:
            raise AuthError("Missing authorization code")

        discovery = await self.get_discovery()
        try:
            tokens = await self._exchange_code(discovery, code, self.redirect_uri(host))
            claims = await self._claims(discovery, tokens)
        except httpx.HTTPError as e:
            logger.error(f"OIDC code exchange failed: {e}")
            raise AuthError("Identity provider error", status_code=502) from e

        if not claims.get("sub"):
            raise AuthError("Identity provider returned no subject", status_code=502)

        user = await user_crud.upsert_from_claims(db, claims)
        if user.is_banned:
            raise AuthError("Account suspended", status_code=403)

        # Fresh sid for the signed-in session; the pre-login one is discarded
        await cart_crud.merge_session_cart(db, session_id=session.sid, user_id=user.id)
        await session_crud.destroy(db, session.sid)
        session = await session_crud.create(db, user_id=user.id)

        logger.info(f"User {user.id} signed in")
        return user, session, self.issue_tokens(user)

    # ── tokens ─────────────────────────────────────────────────────────────

    def issue_tokens(self, user: User) -> Dict[str, str]:
        return {
            "access_token": create_access_token(user.id, additional_claims={"role": user.role.value}),
            "refresh_token": create_refresh_token(user.id),
            "token_type": "bearer",
        }

    async def validate_token(self, db: AsyncSession, token: str) -> Optional[User]:
        payload = decode_token(token)
        if payload is None:
            return None
        user = await user_crud.get(db, payload["sub"])
        if user is None or user.is_banned:
            return None
        return user

    async def refresh(self, db: AsyncSession, refresh_token: str) -> Dict[str, str]:
        payload = decode_token(refresh_token, expected_type="refresh")
        if payload is None:
            raise AuthError("Invalid refresh token")
        user = await user_crud.get(db, payload["sub"])
        if user is None:
            raise AuthError("Invalid refresh token")
        if user.is_banned:
            raise AuthError("Account suspended", status_code=403)
        return self.issue_tokens(user)

    # ── logout ─────────────────────────────────────────────────────────────

    async def logout(self, db: AsyncSession, sid: Optional[str], host: Optional[str]) -> str:
        """Destroy the session; returns where to send the browser next."""
        if sid:
            await session_crud.destroy(db, sid)

        try:
            discovery = await self.get_discovery()
        except AuthError:
            return "/"
        end_session = discovery.get("end_session_endpoint")
        if not end_session:
            return "/"

        domain = self.redirect_uri(host).split(settings.API_PREFIX, 1)[0]
        params = {
            "client_id": settings.REPL_ID,
            "post_logout_redirect_uri": f"{domain}/",
        }
        return f"{end_session}?{urlencode(params)}"


auth_service = AuthService()
