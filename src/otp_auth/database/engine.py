"""Identity database: the async engine behind :class:`UserRepository`.

Only user rows live here.  OTP records and sessions are held in process
memory by their own stores.
"""

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from otp_auth.config import settings
from otp_auth.models.user import Base

engine = create_async_engine(settings.database_url, pool_pre_ping=True)

user_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create the ``users`` table if it is missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; handlers that create users commit explicitly."""
    async with user_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_db() -> None:
    await engine.dispose()
