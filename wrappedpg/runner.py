import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Tuple

from wrappedpg.core.errors import Stage, classify_error, stage_of
from wrappedpg.core.logger import setup_logger
from wrappedpg.core.logging_context import LoggingContext
from wrappedpg.driver import get_driver
from wrappedpg.normalize import CallDescriptor, normalize_call

logger = setup_logger(__name__, include_location=True)


async def _settle(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class LifecycleRunner:
    """
    Acquires a connection, runs an operation with it and always releases it.

    The driver is the one passed in, or the process-wide default looked up
    when each invocation starts.
    """

    def __init__(self, driver: Optional[Any] = None):
        self._driver = driver

    @property
    def driver(self) -> Any:
        return self._driver if self._driver is not None else get_driver()

    @asynccontextmanager
    async def pooled_connection(self, config: Any = None, driver: Optional[Any] = None) -> AsyncIterator[Any]:
        """Connection taken from the pool for ``config`` and returned to it on exit."""
        if driver is None:
            driver = self.driver
        try:
            connection, release = await driver.connect(config)
        except Exception as e:
            self._log_failure(e, Stage.CONNECT)
            raise
        logger.debug("Pooled connection acquired", extra={"scope": "runner"})
        try:
            yield connection
        finally:
            await self._dispose(release)

    @asynccontextmanager
    async def dedicated_connection(self, config: Any = None, driver: Optional[Any] = None) -> AsyncIterator[Any]:
        """Connection opened for ``config`` and closed on exit."""
        if driver is None:
            driver = self.driver
        client = driver.client(config)
        try:
            await client.connect()
        except Exception as e:
            self._log_failure(e, Stage.CONNECT)
            raise
        logger.debug("Dedicated connection established", extra={"scope": "runner"})
        try:
            yield client
        finally:
            await self._dispose(client.end)

    async def run_pooled(self, call: CallDescriptor) -> Any:
        driver = self.driver
        with LoggingContext(mode="pooled"):
            async with self.pooled_connection(call.config, driver) as connection:
                return await self._invoke(call, connection)

    async def run_non_pooled(self, call: CallDescriptor) -> Any:
        driver = self.driver
        with LoggingContext(mode="non_pooled"):
            async with self.dedicated_connection(call.config, driver) as connection:
                return await self._invoke(call, connection)

    def pooled(self, *args) -> Any:
        """``pooled(config?, operation, *args)``; returns an awaitable with the operation result."""
        return self.run_pooled(normalize_call(args))

    def non_pooled(self, *args) -> Any:
        """``non_pooled(config?, operation, *args)``; returns an awaitable with the operation result."""
        return self.run_non_pooled(normalize_call(args))

    async def query(self, sql: str, params: Any = None) -> Tuple[Any, Any]:
        """Run one statement on a pooled default connection. Returns ``(rows, result)``."""

        async def run_query(connection):
            return await connection.query(sql, params)

        result = await self.pooled(run_query)
        return result.rows, result

    async def _invoke(self, call: CallDescriptor, connection: Any) -> Any:
        try:
            return await call.operation.execute(connection, *call.args)
        except Exception as e:
            self._log_failure(e, stage_of(e, Stage.OPERATION))
            raise

    @staticmethod
    async def _dispose(release) -> None:
        try:
            await _settle(release())
        except Exception as e:
            info = classify_error(e, Stage.RELEASE)
            logger.error(
                f"Failed to release connection: {e!r}",
                extra={"scope": "runner", "error_info": info.to_dict()},
            )
        else:
            logger.debug("Connection released", extra={"scope": "runner"})

    @staticmethod
    def _log_failure(error: Exception, stage: Stage) -> None:
        info = classify_error(error, stage)
        logger.error(
            f"{stage.value} failed: {error!r}",
            extra={"scope": "runner", "error_info": info.to_dict()},
        )


_runner = LifecycleRunner()


def pooled(*args) -> Any:
    """
    Perform an operation on a connection taken from the pool.

    Usage:
        await pooled(operation, *args)
        await pooled(config, operation, *args)

    ``config`` is a conninfo string, URL or mapping and keys the pool; when
    omitted the process defaults are used. The operation is called as
    ``operation(connection, *args)``. Raises InvalidOperation right away
    when the operation is neither callable nor a command.
    """
    return _runner.pooled(*args)


def non_pooled(*args) -> Any:
    """
    Perform an operation on a dedicated connection closed afterwards.

    Same signature as pooled().
    """
    return _runner.non_pooled(*args)


async def query(sql: str, params: Any = None) -> Tuple[Any, Any]:
    """
    Run one statement on a pooled connection with default configuration.

        rows, result = await query("SELECT * FROM account WHERE id = %s", (1,))
    """
    return await _runner.query(sql, params)


__all__ = ["LifecycleRunner", "pooled", "non_pooled", "query"]
