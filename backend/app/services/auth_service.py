import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import bcrypt
from backend.app.models.user_orm import AppUserORM

logger = logging.getLogger(__name__)

def hash_password(plain: str) -> str:
    """Hash a password using direct bcrypt."""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(plain.encode('utf-8'), salt)
    return hashed.decode('utf-8')

def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against a hash using direct bcrypt."""
    try:
        return bcrypt.checkpw(plain.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[AppUserORM]:
    result = await db.execute(select(AppUserORM).where(AppUserORM.email == email.lower()))
    return result.scalar_one_or_none()

async def get_user(db: AsyncSession, user_id: str) -> Optional[AppUserORM]:
    return await db.get(AppUserORM, user_id)

async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[AppUserORM]:
    user = await get_user_by_email(db, email)
    if not user or not user.is_active or not user.hashed_password:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user

async def list_active_users(db: AsyncSession) -> list[AppUserORM]:
    """Users that may be assigned as record or action item owners."""
    result = await db.execute(
        select(AppUserORM).where(AppUserORM.status == "active").order_by(AppUserORM.display_name)
    )
    return list(result.scalars().all())

async def seed_admin_user(db: AsyncSession, email: str, password: str) -> None:
    """Seed the first admin account on first startup. Credentials from settings."""
    from backend.app.core.security import Role
    existing = await db.execute(select(AppUserORM).limit(1))
    if existing.scalar_one_or_none():
        return
    db.add(AppUserORM(
        email=email.lower(),
        display_name="Administrator",
        hashed_password=hash_password(password),
        role=Role.ADMIN,
        status="active",
    ))
    await db.commit()
    logger.info("Seeded default admin user")
