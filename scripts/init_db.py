#!/usr/bin/env python
"""Create the database schema for a fresh deployment."""

import asyncio

from hackpulse.core.config import settings
from hackpulse.db.database import create_engine, init_db


async def main() -> None:
    """Main initialization function."""
    print(f"Initializing database: {settings.database_url}")

    engine = create_engine(settings)
    try:
        await init_db(engine)
    finally:
        await engine.dispose()

    print("Database initialization complete!")


if __name__ == "__main__":
    asyncio.run(main())
