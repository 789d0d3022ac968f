"""Database connection management"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from nomi.config import DATABASE_URL, DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE
from nomi.exceptions import UnavailableError

logger = logging.getLogger(__name__)


class Database:
    """
    Database connection pool manager

    With no connection string configured the instance stays in
    "unavailable" mode: is_available is False and connection() raises
    UnavailableError. Callers decide whether that degrades to an empty
    result (reads) or propagates (writes).
    """

    def __init__(self, connection_string: Optional[str] = DATABASE_URL):
        self.connection_string = connection_string
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.connection_string)

    @property
    def is_available(self) -> bool:
        return self.is_configured

    async def init_pool(self) -> None:
        """Initialize connection pool"""
        if not self.is_configured:
            logger.warning("Database URL not found. Using fallback mode.")
            return
        logger.info("Initializing database connection pool")
        self._pool = AsyncConnectionPool(
            self.connection_string,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            open=False
        )
        await self._pool.open()

    async def close_pool(self) -> None:
        """Close connection pool"""
        if self._pool:
            logger.info("Closing database connection pool")
            await self._pool.close()
            self._pool = None

    async def test_connection(self) -> bool:
        """Run a trivial query; False when unconfigured or unreachable"""
        if not self.is_configured:
            logger.warning("Database not configured. Skipping connection test.")
            return False
        try:
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT NOW() AS current_time")
                    row = await cur.fetchone()
            logger.info(f"Database connected successfully: {row['current_time']}")
            return True
        except (psycopg.Error, UnavailableError) as e:
            logger.error(f"Database connection failed: {e}")
            return False

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get database connection from pool"""
        if not self.is_configured:
            raise UnavailableError(
                "Database not available. Please check your DATABASE_URL configuration.",
                operation="db.connection"
            )
        if not self._pool:
            raise UnavailableError("Database pool not initialized", operation="db.connection")

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn


# Global database instance
db = Database()
