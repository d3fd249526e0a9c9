"""Database engine, session factory, and health-check utilities."""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy import text
import asyncio
from .config import settings
from .logger import logger

RETRYABLE_ERROR_MARKERS = (
    "connection",
    "timeout",
    "database is locked",
    "server closed the connection",
    "connection reset",
)

# ==================== Engine Setup ====================


def async_url(url: str) -> str:
    """Force the asyncpg driver onto bare postgresql:// URLs."""
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def engine_options(url: str) -> dict:
    """Pool and driver options for the given URL.

    SQLite (aiosqlite) runs with SQLAlchemy's defaults; pool sizing and the
    asyncpg timeouts only apply to PostgreSQL.
    """
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "echo": False,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
        "connect_args": {
            "timeout": settings.DB_CONNECT_TIMEOUT,
            "command_timeout": settings.DB_QUERY_TIMEOUT,
        },
    }


DATABASE_URL = async_url(settings.DB_URL)
engine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL))

logger.info(f"Database engine configured for {engine.url.get_backend_name()}")

# Swapped out by the test suite
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

Base = declarative_base()

# ==================== Health Checks ====================


async def retry_on_db_error(func, max_retries: int = 3, base_delay: float = 0.5):
    """Run func, retrying transient connection errors with exponential backoff.

    Only used by health checks; user operations never retry.

    Raises:
        The last error once retries are exhausted, or immediately for
        non-transient errors (constraint violations, bad SQL).
    """
    for attempt in range(max_retries):
        try:
            return await func()
        except (OperationalError, DBAPIError) as e:
            error_msg = str(e).lower()
            is_retryable = any(marker in error_msg for marker in RETRYABLE_ERROR_MARKERS)

            if not is_retryable or attempt == max_retries - 1:
                logger.error(
                    f"Database operation failed (attempt {attempt + 1}/{max_retries}): {e}",
                    exc_info=True
                )
                raise

            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Database error on attempt {attempt + 1}/{max_retries}, "
                f"retrying in {delay}s: {e}"
            )
            await asyncio.sleep(delay)


async def check_db_connection() -> bool:
    """Return True if a SELECT 1 round-trip succeeds."""
    async def _ping():
        async with async_session() as session:
            await session.execute(text("SELECT 1"))

    try:
        await retry_on_db_error(
            _ping,
            max_retries=settings.DB_RETRY_MAX_ATTEMPTS,
            base_delay=settings.DB_RETRY_BASE_DELAY,
        )
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False

# ==================== Cleanup ====================

async def dispose_engine():
    """Close all pooled connections at shutdown."""
    logger.info("Disposing database engine and closing connections")
    try:
        await engine.dispose()
        logger.info("Database connections closed successfully")
    except Exception as e:
        logger.error(f"Error disposing database engine: {e}", exc_info=True)
