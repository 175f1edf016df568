"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from waitwise.database import Base
import waitwise.models  # noqa: F401  registers all tables on Base.metadata
from waitwise.models.appointment import Appointment
from waitwise.models.barber import Barber
from waitwise.models.queue_entry import QueueEntry
from waitwise.models.service import Service
from waitwise.models.shop import Shop


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock for async Redis - queue locks always acquire, no real Redis calls."""
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.eval = AsyncMock(return_value=1)
    redis_mock.ping = AsyncMock(return_value=True)
    with patch("waitwise.utils.redis_client.get_redis", new_callable=AsyncMock, return_value=redis_mock):
        yield redis_mock


@pytest.fixture
def mock_sms():
    """Mock for async send_sms - prevents real Twilio calls in tests."""
    with patch("waitwise.services.notifications.send_sms", new_callable=AsyncMock) as mock:
        mock.return_value = {
            "sid": "SM_test_123",
            "status": "sent",
            "error": None,
            "error_code": None,
        }
        yield mock


@pytest.fixture
async def shop(db):
    shop = Shop(
        id=uuid.UUID("a1f0c2de-5b7e-4c1a-9e3d-2f6b8c4d1e01"),
        name="Fade Street Barbers",
        opening_time="09:00",
        closing_time="17:00",
    )
    db.add(shop)
    await db.commit()
    return shop


@pytest.fixture
async def barber(db, shop):
    barber = Barber(shop_id=shop.id, name="Ali")
    db.add(barber)
    await db.commit()
    return barber


@pytest.fixture
async def second_barber(db, shop):
    barber = Barber(shop_id=shop.id, name="Ben")
    db.add(barber)
    await db.commit()
    return barber


@pytest.fixture
async def services(db, shop):
    """Haircut (30) and beard trim (10): 40 minutes together."""
    haircut = Service(shop_id=shop.id, name="Haircut", duration_minutes=30, price=35.0)
    beard = Service(shop_id=shop.id, name="Beard trim", duration_minutes=10, price=15.0)
    db.add_all([haircut, beard])
    await db.commit()
    return [haircut, beard]


@pytest.fixture
def make_entry(db, shop):
    """Insert a queue entry directly, bypassing join_queue."""
    async def _make(barber, position, status="waiting", phone="+61412345678", **kwargs):
        entry = QueueEntry(
            shop_id=shop.id,
            barber_id=barber.id,
            client_name=kwargs.pop("client_name", f"Client {position}"),
            client_phone=phone,
            status=status,
            queue_position=position,
            **kwargs,
        )
        db.add(entry)
        await db.commit()
        return entry
    return _make


@pytest.fixture
def make_appointment(db, shop):
    async def _make(barber, start, end, status="booked", services=None, phone="+61412345678"):
        appointment = Appointment(
            shop_id=shop.id,
            barber_id=barber.id,
            client_name="Booked Client",
            client_phone=phone,
            start_time=start.astimezone(timezone.utc),
            end_time=end.astimezone(timezone.utc),
            status=status,
            services=services or [],
        )
        db.add(appointment)
        await db.commit()
        return appointment
    return _make


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
