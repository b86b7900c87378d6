"""
Pytest fixtures: database engine/session per test, catalog factories, API client.
Tests run against TEST_DATABASE_URL when set (e.g. Postgres), otherwise a fresh SQLite file per test.
"""
import os
import tempfile
from typing import AsyncGenerator, Awaitable, Callable
from uuid import UUID

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL or (
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "storefront_import.db")
)
os.environ["APP_ENV"] = "test"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.db import Base, get_db, get_session_factory, make_session_factory
from storefront.main import app
from storefront.models import Order, OrderItem, Product, ProductVariant, User, UserRole


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh schema for each test."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}"
    eng = create_async_engine(url, echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def product(session: AsyncSession) -> Product:
    product = Product(title="Heritage Vessel", slug="heritage-vessel", base_price_cents=2500)
    session.add(product)
    await session.commit()
    return product


@pytest.fixture
def make_variant(session: AsyncSession, product: Product) -> Callable[..., Awaitable[ProductVariant]]:
    """Factory: create a committed variant under the test product."""

    async def _make(sku: str, price_cents: int, stock: int, is_active: bool = True) -> ProductVariant:
        variant = ProductVariant(
            product_id=product.id,
            sku=sku,
            name=sku.title(),
            price_cents=price_cents,
            stock=stock,
            is_active=is_active,
        )
        session.add(variant)
        await session.commit()
        return variant

    return _make


@pytest_asyncio.fixture
async def customer_user(session: AsyncSession) -> User:
    user = User(email="customer@example.com", name="Test Customer", role=UserRole.CUSTOMER)
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(session: AsyncSession) -> User:
    user = User(email="admin@store.com", name="Store Admin", role=UserRole.ADMIN)
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def customer_token(customer_user: User) -> str:
    from storefront.core.auth import create_access_token
    return create_access_token(customer_user.id, UserRole.CUSTOMER)


@pytest.fixture
def admin_token(admin_user: User) -> str:
    from storefront.core.auth import create_access_token
    return create_access_token(admin_user.id, UserRole.ADMIN)


class DbReader:
    """Reads committed state through fresh sessions, bypassing any test-session identity map."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def stock(self, variant_id: UUID) -> int:
        async with self.session_factory() as s:
            r = await s.execute(select(ProductVariant.stock).where(ProductVariant.id == variant_id))
            return r.scalar_one()

    async def count(self, model) -> int:
        async with self.session_factory() as s:
            r = await s.execute(select(func.count()).select_from(model))
            return r.scalar_one()

    async def order(self, order_id: UUID) -> Order:
        async with self.session_factory() as s:
            r = await s.execute(select(Order).where(Order.id == UUID(str(order_id))))
            return r.scalar_one()

    async def order_items(self, order_id: UUID) -> list[OrderItem]:
        async with self.session_factory() as s:
            r = await s.execute(
                select(OrderItem).where(OrderItem.order_id == UUID(str(order_id))).order_by(OrderItem.position)
            )
            return list(r.scalars().all())


@pytest.fixture
def db(session_factory) -> DbReader:
    return DbReader(session_factory)


@pytest_asyncio.fixture
async def client(session: AsyncSession, session_factory):
    async def override_get_db():
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
