"""
Create all S-DCA database tables.

Usage:
    python -m scripts.init_db

Uses DATABASE_URL from .env (PostgreSQL), or a local SQLite file when unset.
"""
import asyncio
from shared.database import engine
from shared.models.base import Base
import agents.sdca.models.db  # noqa: F401  registers the tables on Base.metadata


async def init_database():
    print("Connecting to database...")
    async with engine.begin() as conn:
        print("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

    await engine.dispose()
    print("Database initialization complete.")


if __name__ == "__main__":
    asyncio.run(init_database())
