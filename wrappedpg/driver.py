"""
Default PostgreSQL driver built on psycopg 3 and psycopg_pool.

The runners only need a narrow contract from a driver:

    connection, release = await driver.connect(config)   # pooled
    client = driver.client(config); await client.connect(); client.end()
    result = await connection.query(sql, params)           # result.rows

Any object honouring it can be installed with set_driver(), which is how
tests and applications with their own pools plug in.
"""
import asyncio
from typing import Any, Dict, List, Mapping, Optional, Tuple

import psycopg
from psycopg import AsyncConnection
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from pydantic import BaseModel, Field

from wrappedpg.core.config import Settings, get_settings
from wrappedpg.core.logger import setup_logger

logger = setup_logger(__name__, include_location=True)


class QueryResult(BaseModel):
    """Outcome of one statement."""

    rows: List[Any] = Field(default_factory=list)
    row_count: int = -1
    command: Optional[str] = None
    fields: List[str] = Field(default_factory=list)


class PgConnection:
    """A psycopg AsyncConnection exposing ``query``."""

    def __init__(self, raw: Optional[AsyncConnection] = None):
        self.raw = raw

    async def query(self, sql: str, params: Any = None) -> QueryResult:
        if self.raw is None:
            raise psycopg.OperationalError("the connection is not established")
        async with self.raw.cursor() as cur:
            logger.debug(f"Executing query: {sql} | Params: {params}")
            await cur.execute(sql, params)
            rows = await cur.fetchall() if cur.description else []
            return QueryResult(
                rows=rows,
                row_count=cur.rowcount,
                command=cur.statusmessage,
                fields=[column.name for column in cur.description or []],
            )


class PgClient(PgConnection):
    """Dedicated, non-pooled connection opened with connect() and closed with end()."""

    def __init__(self, config: Any, conninfo: str, connect_timeout: Optional[int] = None):
        super().__init__()
        self.config = config
        self.conninfo = conninfo
        self.connect_timeout = connect_timeout

    async def connect(self) -> None:
        kwargs = {"autocommit": True, "row_factory": dict_row}
        if self.connect_timeout:
            kwargs["connect_timeout"] = self.connect_timeout
        self.raw = await AsyncConnection.connect(self.conninfo, **kwargs)

    async def end(self) -> None:
        if self.raw is not None and not self.raw.closed:
            await self.raw.close()

    @property
    def destroyed(self) -> bool:
        return self.raw is None or self.raw.closed


class PsycopgDriver:
    """
    Pools keyed by connection configuration plus dedicated clients.

    Every distinct configuration gets its own AsyncConnectionPool, created on
    first use. Connections run in autocommit mode so BEGIN/COMMIT issued by
    the transaction wrapper delimit the transaction.
    """

    def __init__(self, defaults: Optional[Settings] = None):
        self.defaults = defaults or get_settings()
        self._pools: Dict[str, AsyncConnectionPool] = {}
        self._lock = asyncio.Lock()

    def conninfo(self, config: Any = None) -> str:
        """Turn a configuration (None, conninfo/URL string or mapping) into a conninfo string."""
        if config is None:
            return self.defaults.default_conninfo
        if isinstance(config, str):
            return config
        if isinstance(config, Mapping):
            return make_conninfo(**{key: value for key, value in config.items() if value is not None})
        raise TypeError(f"Unsupported connection configuration: {type(config).__name__}")

    async def pool(self, config: Any = None) -> AsyncConnectionPool:
        """Return the pool for a configuration, opening it on first use."""
        key = self.conninfo(config)
        pool = self._pools.get(key)
        if pool is not None:
            return pool
        async with self._lock:
            pool = self._pools.get(key)
            if pool is None:
                pool = AsyncConnectionPool(
                    key,
                    min_size=self.defaults.pool_min_size,
                    max_size=self.defaults.pool_max_size,
                    timeout=self.defaults.pool_timeout,
                    kwargs={"autocommit": True, "row_factory": dict_row},
                    name=f"wrappedpg-{len(self._pools) + 1}",
                    open=False,
                )
                await pool.open(wait=True)
                self._pools[key] = pool
                logger.info(f"Connection pool {pool.name} opened", extra={"scope": "driver"})
        return pool

    async def connect(self, config: Any = None) -> Tuple[PgConnection, Any]:
        """Take a connection from the pool. Returns it with its release callable."""
        pool = await self.pool(config)
        raw = await pool.getconn()

        async def release():
            await pool.putconn(raw)

        return PgConnection(raw), release

    def client(self, config: Any = None) -> PgClient:
        return PgClient(config, self.conninfo(config), connect_timeout=self.defaults.connect_timeout)

    async def close(self) -> None:
        """Close every pool; later calls open new ones."""
        async with self._lock:
            pools, self._pools = self._pools, {}
        for pool in pools.values():
            await pool.close()
            logger.info(f"Connection pool {pool.name} closed", extra={"scope": "driver"})


_driver: Optional[Any] = None


def get_driver() -> Any:
    """Return the process-wide driver, creating a PsycopgDriver on first use."""
    global _driver
    if _driver is None:
        _driver = PsycopgDriver()
    return _driver


def set_driver(instance: Any) -> None:
    """
    Replace the process-wide driver used when a runner has none of its own.

    Takes effect for calls started afterwards; running invocations keep the
    driver they began with. The previous driver is not closed.
    """
    global _driver
    _driver = instance


async def close_driver() -> None:
    """Close the process-wide driver's pools and forget it."""
    global _driver
    driver, _driver = _driver, None
    close = getattr(driver, "close", None)
    if close is not None:
        await close()


__all__ = [
    "QueryResult",
    "PgConnection",
    "PgClient",
    "PsycopgDriver",
    "get_driver",
    "set_driver",
    "close_driver",
]
