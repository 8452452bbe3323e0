from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from zvonok.core.config import settings
from zvonok.core.logging import db_logger


def to_async_url(url: str) -> str:
    """Pick the async driver for plain PostgreSQL URLs; other URLs pass through."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


ASYNC_DATABASE_URL = to_async_url(settings.DATABASE_URL)

engine_options = {"echo": settings.DEBUG}
if not ASYNC_DATABASE_URL.startswith("sqlite"):
    engine_options["pool_pre_ping"] = True

async_engine = create_async_engine(ASYNC_DATABASE_URL, **engine_options)

async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    """One session per request, committed on success and rolled back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            db_logger.debug("session rolled back", error=type(e).__name__)
            raise


async def create_tables():
    from zvonok.db import models  # noqa: F401  registers tables on Base.metadata

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    db_logger.info("tables ensured", tables=len(Base.metadata.tables))
