"""Pytest configuration and fixtures for Curio Market API tests."""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncGenerator, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from curio_market.core.rate_limit import limiter
from curio_market.core.security import create_access_token
from curio_market.db.base import Base
from curio_market.db.session import get_db
# Import all models to ensure they are registered with Base.metadata
from curio_market.models import (
    Listing,
    ListingImage,
    ListingState,
    Order,
    OrderItem,
    OrderStatus,
    Seller,
    User,
    UserRole,
)

# Test database URL - use SQLite for tests
# Using StaticPool ensures all connections share the same in-memory database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database and session per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        echo=False,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    from curio_market.main import create_application

    # Create app without the lifespan that connects to production services
    @asynccontextmanager
    async def test_lifespan(app):
        yield

    test_app = create_application()
    test_app.router.lifespan_context = test_lifespan

    async def override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = override_get_db

    limiter.enabled = False
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    limiter.enabled = True
    test_app.dependency_overrides.clear()


@pytest.fixture
def fake_gateway():
    """Stripe gateway double; every call is an AsyncMock the test configures."""
    gateway = AsyncMock()
    gateway.configured = True
    gateway.construct_event = MagicMock()
    return gateway


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


async def make_user(db: AsyncSession, user_id: str, role: UserRole = UserRole.BUYER, **fields) -> User:
    user = User(
        id=user_id,
        email=fields.pop("email", f"{user_id}@example.com"),
        first_name=fields.pop("first_name", user_id.title()),
        role=role,
        **fields,
    )
    db.add(user)
    await db.commit()
    return user


async def make_seller(db: AsyncSession, user: User, shop_name: str = "Cabinet of Curiosities") -> Seller:
    seller = Seller(user_id=user.id, shop_name=shop_name)
    db.add(seller)
    await db.commit()
    return seller


async def make_listing(
    db: AsyncSession,
    seller: Seller,
    title: str = "Victorian taxidermy owl",
    price: str = "120.00",
    quantity: int = 3,
    shipping_cost: str = "10.00",
    state: ListingState = ListingState.PUBLISHED,
    image_urls=(),
) -> Listing:
    listing = Listing(
        seller_id=seller.id,
        title=title,
        slug=title.lower().replace(" ", "-"),
        description=f"{title}, sold as found.",
        price=Decimal(price),
        quantity=quantity,
        shipping_cost=Decimal(shipping_cost),
        state=state,
        images=[ListingImage(url=url, sort_order=i) for i, url in enumerate(image_urls)],
    )
    db.add(listing)
    await db.commit()
    return listing


async def make_order(
    db: AsyncSession,
    buyer: User,
    seller: Seller,
    listing: Listing,
    status: OrderStatus = OrderStatus.PAID,
    quantity: int = 1,
    **fields,
) -> Order:
    """A checked-out order for one line of `listing`, priced like checkout does."""
    subtotal = Decimal(listing.price) * quantity
    shipping = Decimal(listing.shipping_cost or 0)
    order = Order(
        buyer_id=buyer.id,
        seller_id=seller.id,
        subtotal=subtotal,
        shipping_cost=shipping,
        platform_fee=(subtotal * Decimal("0.03")).quantize(Decimal("0.01")),
        total=subtotal + shipping,
        status=status,
        stripe_payment_intent_id=fields.pop("stripe_payment_intent_id", "pi_paid"),
        items=[OrderItem(listing_id=listing.id, quantity=quantity, price=listing.price, title=listing.title)],
        **fields,
    )
    db.add(order)
    await db.commit()
    return order


@pytest_asyncio.fixture
async def buyer(db_session: AsyncSession) -> User:
    return await make_user(db_session, "buyer-1")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await make_user(db_session, "admin-1", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def seller_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "seller-1", role=UserRole.SELLER)


@pytest_asyncio.fixture
async def seller(db_session: AsyncSession, seller_user: User) -> Seller:
    return await make_seller(db_session, seller_user)
