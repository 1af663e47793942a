#!/usr/bin/env python3
"""Setup script for the marketplace API: migrate and load sample data."""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from marketplace.core.database import async_session_factory, close_db, utcnow
from marketplace.models import (
    Account,
    AccountRole,
    AvailabilitySlot,
    Listing,
    ListingType,
    SellerTier,
)

server_dir = Path(__file__).parent.parent / "server"

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database() -> None:
    """Upgrade the database to the latest migration."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Create an admin, a guide with one tour and a week of open slots."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        async with db.begin():
            existing = await db.execute(select(func.count()).select_from(Listing))
            if existing.scalar_one() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            db.add(Account(id="admin-1", role=AccountRole.ADMIN.value, email="admin@example.com"))
            guide = Account(
                id="guide-1",
                role=AccountRole.GUIDE.value,
                email="guide@example.com",
                seller_tier=SellerTier.PRO.value,
            )
            db.add(guide)
            db.add(Account(id="buyer-1", role=AccountRole.BUYER.value, email="buyer@example.com"))

            tour = Listing(
                listing_type=ListingType.TOUR.value,
                provider_id=guide.id,
                title="Old Town Walking Tour",
                description="Three hours through the historic centre with a licensed guide",
                price_amount=4500,
                currency="eur",
                free_cancel_hours=48,
                refund_percent_after_deadline=50,
            )
            db.add(tour)
            await db.flush()

            first_start = utcnow().replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=3)
            for day in range(7):
                start = first_start + timedelta(days=day)
                db.add(
                    AvailabilitySlot(
                        provider_id=guide.id,
                        listing_id=tour.id,
                        start_at=start,
                        end_at=start + timedelta(hours=3),
                    )
                )

    logger.info("Sample data created successfully!")


async def main() -> None:
    logger.info("Starting marketplace API setup...")
    await asyncio.to_thread(setup_database)
    try:
        await create_sample_data()
    finally:
        await close_db()
    logger.info("Setup completed successfully!")
    logger.info("Start the API server with: uvicorn marketplace.main:app --reload")


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
