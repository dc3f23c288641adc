"""CRUD operations for User model."""

from typing import Any, Dict, List, Optional
from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.models.user import User, UserRole, AccountStatus
from curio_market.schemas.user import UserUpdate


class CRUDUser(CRUDBase[User, UserUpdate, UserUpdate]):
    """CRUD operations for User model."""

    async def get_by_email(
        self,
        db: AsyncSession,
        email: str
    ) -> Optional[User]:
        result = await db.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_customer_id(
        self,
        db: AsyncSession,
        customer_id: str
    ) -> Optional[User]:
        result = await db.execute(
            select(User).where(User.stripe_customer_id == customer_id)
        )
        return result.scalars().first()

    async def get_by_subscription_id(
        self,
        db: AsyncSession,
        subscription_id: str
    ) -> Optional[User]:
        result = await db.execute(
            select(User).where(User.stripe_subscription_id == subscription_id)
        )
        return result.scalars().first()

    async def upsert_from_claims(
        self,
        db: AsyncSession,
        claims: Dict[str, Any]
    ) -> User:
        """
        Create or refresh a user from identity-provider claims.

        Only profile fields are touched; role, status and billing survive re-login.
        """
        user = await self.get(db, claims["sub"])
        if user is None:
            user = User(id=claims["sub"], role=UserRole.BUYER)
            db.add(user)

        email = claims.get("email")
        if email:
            # Another account may already hold this address
            holder = await self.get_by_email(db, email)
            if holder is None or holder.id == user.id:
                user.email = email
        user.first_name = claims.get("first_name") or user.first_name
        user.last_name = claims.get("last_name") or user.last_name
        user.profile_image_url = claims.get("profile_image_url") or user.profile_image_url

        await db.flush()
        await db.refresh(user)
        return user

    async def search(
        self,
        db: AsyncSession,
        *,
        query: Optional[str] = None,
        role: Optional[UserRole] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[User]:
        stmt = select(User)
        if query:
            term = f"%{query}%"
            stmt = stmt.where(
                or_(
                    User.email.ilike(term),
                    User.first_name.ilike(term),
                    User.last_name.ilike(term),
                )
            )
        if role:
            stmt = stmt.where(User.role == role)

        stmt = stmt.order_by(User.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def set_banned(
        self,
        db: AsyncSession,
        user: User,
        banned: bool
    ) -> User:
        user.account_status = AccountStatus.BANNED if banned else AccountStatus.ACTIVE
        await db.flush()
        await db.refresh(user)
        return user

    async def raise_verification_level(
        self,
        db: AsyncSession,
        user: User,
        level: int
    ) -> User:
        """Levels only ever go up."""
        user.verification_level = max(user.verification_level or 0, level)
        await db.flush()
        return user


user_crud = CRUDUser(User)
