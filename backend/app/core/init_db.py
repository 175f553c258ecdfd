"""
Database initialization script.

Creates the RCFA schema and seeds the first admin account.
Run this to initialize a fresh database; Alembic revisions under
backend/alembic/versions mirror the same schema for managed upgrades.
"""

import asyncio

from backend.app.core.config import get_settings
from backend.app.core.database import Base, build_engine, async_session_maker
import backend.app.models  # noqa: F401  registers every table with Base
from backend.app.services.auth_service import seed_admin_user

settings = get_settings()


async def create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database():
    """Create all tables and the seeded admin user."""
    print(f"📡 Initializing database at {settings.database_url}...")
    engine = build_engine(settings.database_url)
    print("📦 Creating tables...")
    await create_schema(engine)
    await engine.dispose()

    async with async_session_maker() as session:
        await seed_admin_user(session, settings.admin_email, settings.admin_password)
    print("✅ Database initialized successfully!")


async def drop_all_tables():
    """Drop all tables (use with caution!)."""

    engine = build_engine(settings.database_url)

    async with engine.begin() as conn:
        print("⚠️ Dropping all tables...")
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
    print("✅ All tables dropped.")


if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1 and sys.argv[1] == "--drop":
        print("⚠️ WARNING: This will drop all tables!")
        confirm = input("Type 'yes' to confirm: ")
        if confirm == "yes":
            asyncio.run(drop_all_tables())
        else:
            print("Aborted.")
    else:
        asyncio.run(init_database())
