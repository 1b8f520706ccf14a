"""
asyncpg pool shared by the Postgres stores.

The API lifespan creates one Database when DATABASE_URL is set, connects it,
applies schema.sql and closes it on shutdown.
"""

import logging
import pathlib
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).parent / "schema.sql"


class Database:
    def __init__(
        self,
        dsn: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 60.0,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
            )
        except Exception as e:
            logger.error(f"Could not open Postgres pool: {e}")
            raise
        logger.info(f"Postgres pool open ({self.min_size}..{self.max_size} connections)")
        return self._pool

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("Postgres pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database is not connected")
        return self._pool

    @asynccontextmanager
    async def connection(self):
        async with self.pool.acquire() as conn:
            yield conn

    async def execute(self, query: str, *args) -> str:
        async with self.connection() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args) -> list:
        async with self.connection() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args):
        async with self.connection() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args):
        async with self.connection() as conn:
            return await conn.fetchval(query, *args)

    async def init_schema(self, path: pathlib.Path = SCHEMA_PATH) -> None:
        """Create any missing tables. Safe to run on every startup."""
        sql = path.read_text()
        async with self.connection() as conn:
            await conn.execute(sql)
        logger.info(f"Schema applied from {path.name}")

    async def health_check(self) -> dict:
        try:
            await self.fetchval("SELECT 1")
        except Exception as e:
            logger.error(f"Postgres health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}
        return {
            "status": "healthy",
            "pool_size": self.pool.get_size(),
            "pool_free": self.pool.get_idle_size(),
        }
