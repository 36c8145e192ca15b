import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from orgtree.config import settings
from orgtree.exceptions import ConflictError, DatabaseError, OrgTreeError

logger = logging.getLogger(__name__)

# Environment-based configurations
if settings.environment == "production":
    engine = create_async_engine(
        settings.database_url,
        pool_size=20,
        max_overflow=50,
        pool_timeout=60,
        pool_recycle=1800,
    )
elif settings.database_url.startswith("sqlite"):
    engine = create_async_engine(settings.database_url, echo=settings.debug)
else:
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,  # Enable query logging in debug mode
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
    )

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db():
    logger.debug("Opening database session...")
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception as e:
            logger.error(f"Database session error: {e}")
            raise
        finally:
            try:
                await db.close()
                logger.debug("Database session closed.")
            except Exception as close_error:
                logger.warning(f"Error closing database session: {close_error}")


# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_write_conflict(exc: SQLAlchemyError) -> bool:
    """
    True for store errors a retry can resolve. asyncpg reports deadlocks and
    lock timeouts as a plain DBAPIError carrying the SQLSTATE.
    """
    if isinstance(exc, (IntegrityError, OperationalError)):
        return True
    return isinstance(exc, DBAPIError) and getattr(exc.orig, "sqlstate", None) in RETRYABLE_SQLSTATES


@asynccontextmanager
async def atomic(db: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """
    Run a read-modify-write block as one unit of work.

    Commits when the block exits cleanly. Any exception rolls the session
    back so no partial write is ever persisted. Store-level write conflicts
    (a lost race on a row lock or a unique index) are re-raised as
    ConflictError so callers can retry the whole operation; other driver
    errors become DatabaseError. Domain errors pass through unchanged.
    """
    try:
        yield db
        await db.commit()
    except OrgTreeError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        if is_write_conflict(exc):
            logger.warning("Write conflict during %s: %s", operation, exc)
            raise ConflictError(
                f"Concurrent modification detected during {operation}; retry the operation",
                details={"operation": operation},
            ) from exc
        logger.error("Database error during %s: %s", operation, exc)
        raise DatabaseError(operation=operation) from exc
    except BaseException:
        await db.rollback()
        raise
