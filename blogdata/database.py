from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from blogdata.config import settings

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.STATE_DATABASE_URL,
    echo=settings.DEBUG,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_state_db(bind: AsyncEngine | None = None) -> None:
    """Create the local state tables if they do not exist yet."""
    # Registers the ORM tables on Base.metadata.
    from blogdata import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
