"""
Shared fixtures: in-memory SQLite stores for both services, a fake broker,
and a cart service served through ``httpx.MockTransport``.
"""
import json
from dataclasses import dataclass
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.errors import BrokerUnavailable
from services.orders_service.app import models as order_models
from services.orders_service.app.cart_client import CartClient
from services.payments_service.app import models as payment_models


def memory_engine():
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


async def make_sessions(metadata=None):
    """Session factory over a fresh in-memory DB; ``metadata=None`` leaves it without tables."""
    engine = memory_engine()
    if metadata is not None:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
    return engine, sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def orders_sessions():
    engine, sessions = await make_sessions(order_models.Base.metadata)
    yield sessions
    await engine.dispose()


@pytest_asyncio.fixture
async def payments_sessions():
    engine, sessions = await make_sessions(payment_models.Base.metadata)
    yield sessions
    await engine.dispose()


@pytest_asyncio.fixture
async def broken_sessions():
    # БД без таблиц: любой запрос падает с OperationalError
    engine, sessions = await make_sessions()
    yield sessions
    await engine.dispose()


async def count_rows(sessions, model, *criteria) -> int:
    async with sessions() as session:
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        return await session.scalar(stmt)


async def all_rows(sessions, model):
    async with sessions() as session:
        res = await session.execute(select(model).order_by(*model.__table__.primary_key.columns))
        return list(res.scalars().all())


@dataclass
class PublishedMessage:
    routing_key: str
    payload: dict
    message_id: Optional[str]

    @property
    def body(self) -> bytes:
        return json.dumps(self.payload).encode("utf-8")


class FakeBroker:
    """Records publishes; ``fail_after`` makes every publish past the n-th raise."""

    def __init__(self):
        self.published: list[PublishedMessage] = []
        self.ready = True
        self.fail_after: Optional[int] = None

    def is_ready(self) -> bool:
        return self.ready

    async def publish(self, routing_key: str, payload: dict, message_id: Optional[str] = None) -> None:
        if not self.ready:
            raise BrokerUnavailable("Broker connection is not established")
        if self.fail_after is not None and len(self.published) >= self.fail_after:
            raise BrokerUnavailable("channel closed")
        self.published.append(PublishedMessage(routing_key, payload, message_id))

    def messages(self, routing_key: str) -> list[PublishedMessage]:
        return [m for m in self.published if m.routing_key == routing_key]


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def carts():
    """user_id -> cart JSON, ``httpx.Response`` or an exception to raise."""
    return {}


@pytest_asyncio.fixture
async def cart_client(carts):
    def handler(request: httpx.Request) -> httpx.Response:
        user_id = request.url.path.rsplit("/", 1)[-1]
        value = carts.get(user_id, {"items": [], "totalAmount": 0})
        if isinstance(value, Exception):
            raise value
        if isinstance(value, httpx.Response):
            return value
        return httpx.Response(200, json=value)

    client = CartClient("http://cart-service", transport=httpx.MockTransport(handler))
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def orders_client(orders_sessions, cart_client):
    from services.orders_service.app.database import get_session
    from services.orders_service.app.main import app
    from services.orders_service.app.routers import get_cart_client

    async def session_override():
        async with orders_sessions() as session:
            yield session

    app.dependency_overrides[get_session] = session_override
    app.dependency_overrides[get_cart_client] = lambda: cart_client
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://orders-service") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def payments_client(payments_sessions):
    from services.payments_service.app.database import get_session
    from services.payments_service.app.main import app

    async def session_override():
        async with payments_sessions() as session:
            yield session

    app.dependency_overrides[get_session] = session_override
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://payments-service") as client:
        yield client
    app.dependency_overrides.clear()


BAKER_STREET_CART = {
    "items": [{"productId": "p1", "quantity": 2, "price": 10.0}],
    "totalAmount": 20.0,
}
