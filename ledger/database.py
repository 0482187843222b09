"""Database engine, session factory and unit-of-work helper"""
from contextlib import asynccontextmanager
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ledger.config import settings
from ledger.services.errors import LedgerError, StorageError

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """FastAPI dependency yielding one session per request"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create all tables (development only; production uses Alembic)"""
    import ledger.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()


@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    Run a block as one unit of work.

    Commits when the block finishes, rolls everything back on any error.
    Domain errors propagate unchanged; driver errors become StorageError.
    """
    try:
        yield db
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Unit of work failed, rolled back: {e}", exc_info=True)
        raise StorageError("The operation could not be saved") from e
    except Exception:
        await db.rollback()
        raise
