"""
Postgres Connection Pool

Shared asyncpg pool for dataset, execution and schema-cache tables. json/jsonb
columns are decoded to Python objects so result rows and cached schemas come
back as dicts and lists.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional, Any, Dict, List

import asyncpg
from asyncpg import Pool
from asyncpg.exceptions import CannotConnectNowError, TooManyConnectionsError

from shopdata.config import settings

logger = logging.getLogger(__name__)

# Errors worth waiting out while Postgres is still starting or saturated.
_TRANSIENT_CONNECT_ERRORS = (CannotConnectNowError, TooManyConnectionsError, OSError)


def _encode_json(value: Any) -> str:
    # Execution rows may carry datetimes, UUIDs or Decimals from Shopify scalars.
    return json.dumps(value, default=str)


async def _register_json_codecs(conn: asyncpg.Connection) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=_encode_json,
            decoder=json.loads,
            schema="pg_catalog",
        )


@dataclass(frozen=True)
class PoolOptions:
    host: str
    port: int
    database: str
    user: str
    password: str
    min_size: int = 1
    max_size: int = 10
    command_timeout: float = 60.0

    @classmethod
    def from_settings(cls, **overrides: Any) -> "PoolOptions":
        values: Dict[str, Any] = dict(
            host=settings.POSTGRES_HOST,
            port=settings.POSTGRES_PORT,
            database=settings.POSTGRES_DATABASE,
            user=settings.POSTGRES_USER,
            password=settings.POSTGRES_PASSWORD,
            min_size=settings.POSTGRES_POOL_MIN_SIZE,
            max_size=settings.POSTGRES_POOL_MAX_SIZE,
        )
        values.update(overrides)
        return cls(**values)

    def describe(self) -> str:
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


class PostgresConnectionPool:
    """
    Lazily created asyncpg pool.

    Query helpers acquire a connection per call; use `transaction()` when
    several statements must commit together (template seeding).
    """

    def __init__(
        self,
        options: PoolOptions,
        *,
        pool_name: str = "default",
        connect_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        self.options = options
        self.pool_name = pool_name
        self.connect_attempts = connect_attempts
        self.retry_delay = retry_delay
        self._pool: Optional[Pool] = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        async with self._lock:
            if self._pool is not None:
                return
            self._pool = await self._connect()

    async def _connect(self) -> Pool:
        opts = self.options
        logger.info(f"[{self.pool_name}] Connecting to Postgres at {opts.describe()}")
        for attempt in range(1, self.connect_attempts + 1):
            try:
                pool = await asyncpg.create_pool(
                    host=opts.host,
                    port=opts.port,
                    database=opts.database,
                    user=opts.user,
                    password=opts.password,
                    min_size=opts.min_size,
                    max_size=opts.max_size,
                    command_timeout=opts.command_timeout,
                    init=_register_json_codecs,
                )
            except _TRANSIENT_CONNECT_ERRORS as e:
                if attempt == self.connect_attempts:
                    logger.error(
                        f"[{self.pool_name}] Giving up after {attempt} connection attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"[{self.pool_name}] Connection attempt {attempt} failed, retrying: {e}"
                )
                await asyncio.sleep(self.retry_delay * attempt)
            else:
                logger.info(
                    f"[{self.pool_name}] Pool ready (size {opts.min_size}-{opts.max_size})"
                )
                return pool
        raise RuntimeError("connect_attempts must be at least 1")

    @asynccontextmanager
    async def get_connection(self):
        if self._pool is None:
            await self.initialize()
        assert self._pool is not None
        async with self._pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        """Connection with an open transaction; commits on clean exit."""
        async with self.get_connection() as conn:
            async with conn.transaction():
                yield conn

    async def execute_query(self, query: str, *args, timeout: Optional[float] = None) -> str:
        """Run a statement and return its status tag, e.g. "UPDATE 1"."""
        async with self.get_connection() as conn:
            return await conn.execute(query, *args, timeout=timeout)

    async def fetch_all(
        self, query: str, *args, timeout: Optional[float] = None
    ) -> List[asyncpg.Record]:
        async with self.get_connection() as conn:
            return await conn.fetch(query, *args, timeout=timeout)

    async def fetch_one(
        self, query: str, *args, timeout: Optional[float] = None
    ) -> Optional[asyncpg.Record]:
        async with self.get_connection() as conn:
            return await conn.fetchrow(query, *args, timeout=timeout)

    async def fetch_val(self, query: str, *args, timeout: Optional[float] = None) -> Any:
        async with self.get_connection() as conn:
            return await conn.fetchval(query, *args, timeout=timeout)

    async def is_healthy(self) -> bool:
        if self._pool is None:
            return False
        try:
            return await self.fetch_val("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"[{self.pool_name}] Health check failed: {e}")
            return False

    async def get_pool_stats(self) -> Dict[str, Any]:
        if self._pool is None:
            return {"initialized": False, "size": 0, "free": 0}

        size = self._pool.get_size()
        idle = self._pool.get_idle_size()
        return {
            "initialized": True,
            "min_size": self.options.min_size,
            "max_size": self.options.max_size,
            "size": size,
            "free": idle,
            "in_use": size - idle,
        }

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info(f"[{self.pool_name}] Pool closed")


_default_pool: Optional[PostgresConnectionPool] = None


def get_default_pool() -> PostgresConnectionPool:
    """Process-wide pool built from settings on first use."""
    global _default_pool

    if _default_pool is None:
        _default_pool = PostgresConnectionPool(PoolOptions.from_settings())
    return _default_pool


async def close_default_pool() -> None:
    global _default_pool

    if _default_pool is not None:
        await _default_pool.close()
    _default_pool = None
