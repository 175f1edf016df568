"""
Seed a demo shop (Fade Street Barbers) with barbers and services.

Usage:
    python scripts/seed_demo_shop.py
"""
import asyncio
import logging

from sqlalchemy import select

from waitwise.database import async_session_factory
from waitwise.models.barber import Barber
from waitwise.models.service import Service
from waitwise.models.shop import Shop

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SHOP_NAME = "Fade Street Barbers"

BARBERS = ["Ali", "Ben", "Chris"]

SERVICES = [
    ("Haircut", 30, 35.0),
    ("Skin fade", 45, 45.0),
    ("Beard trim", 15, 20.0),
    ("Hot towel shave", 30, 40.0),
]


async def seed():
    async with async_session_factory() as session:
        existing = (
            await session.execute(select(Shop.id).where(Shop.name == SHOP_NAME))
        ).scalar_one_or_none()

        if existing:
            logger.info("Demo shop already exists (id=%s). Skipping.", existing)
            return

        shop = Shop(name=SHOP_NAME, opening_time="09:00", closing_time="18:00")
        session.add(shop)
        await session.flush()

        for name in BARBERS:
            session.add(Barber(shop_id=shop.id, name=name))
        for name, minutes, price in SERVICES:
            session.add(Service(shop_id=shop.id, name=name, duration_minutes=minutes, price=price))

        await session.commit()
        logger.info("Seeded demo shop %s (id=%s)", SHOP_NAME, shop.id)


if __name__ == "__main__":
    asyncio.run(seed())
