#!/usr/bin/env python3
"""Setup script for the vehicle rental API: migrate the schema and seed a small fleet."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from rental_core.core.database import async_session_factory, close_db
from rental_core.models import Vehicle

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_FLEET = [
    {"name": "Toyota Corolla", "category": "Compact Sedan", "license_plate": "RC-1001", "tank_capacity_liters": 50},
    {"name": "Honda Civic", "category": "Compact Sedan", "license_plate": "RC-1002"},
    {"name": "Ford Explorer", "category": "Midsize SUV", "license_plate": "RC-2001"},
    {"name": "Chevrolet Tahoe", "category": "Fullsize SUV", "license_plate": "RC-2002", "cleaning_buffer_hours": 3},
    {"name": "Ford Transit", "category": "Cargo Van", "license_plate": "RC-3001", "tank_capacity_liters": 95},
]


def run_migrations() -> None:
    """Bring the schema up to the latest Alembic revision."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Seed the fleet catalog unless vehicles already exist."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.execute(select(func.count()).select_from(Vehicle))
            if existing.scalar_one() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            for data in SAMPLE_FLEET:
                db.add(Vehicle(**data))

            await db.commit()
            logger.info(f"Created {len(SAMPLE_FLEET)} sample vehicles")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise
        finally:
            await close_db()


def main() -> None:
    logger.info("Starting vehicle rental API setup...")

    run_migrations()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn rental_core.main:app --reload")


if __name__ == "__main__":
    main()
