import psycopg
import pytest
from psycopg.conninfo import conninfo_to_dict

import wrappedpg.driver
from wrappedpg.core.config import Settings
from wrappedpg.driver import (
    PgClient,
    PgConnection,
    PsycopgDriver,
    QueryResult,
    close_driver,
    get_driver,
    set_driver,
)


@pytest.fixture
def settings():
    return Settings(POSTGRES_DB="orders", POSTGRES_HOST="db.internal", WRAPPEDPG_CONNECT_TIMEOUT="3")


@pytest.fixture
def pg_driver(settings):
    return PsycopgDriver(settings)


def test_conninfo_from_defaults(pg_driver):
    assert conninfo_to_dict(pg_driver.conninfo(None)) == {"dbname": "orders", "host": "db.internal"}


def test_conninfo_string_is_kept(pg_driver):
    assert pg_driver.conninfo("postgresql://app@db/orders") == "postgresql://app@db/orders"


def test_conninfo_from_mapping(pg_driver):
    conninfo = pg_driver.conninfo({"dbname": "orders", "user": "app", "password": None})
    assert conninfo_to_dict(conninfo) == {"dbname": "orders", "user": "app"}


def test_conninfo_rejects_other_types(pg_driver):
    with pytest.raises(TypeError):
        pg_driver.conninfo(42)


def test_client_is_not_connected(pg_driver):
    client = pg_driver.client({"dbname": "orders"})

    assert isinstance(client, PgClient)
    assert client.config == {"dbname": "orders"}
    assert client.connect_timeout == 3
    assert client.destroyed is True


@pytest.mark.asyncio
async def test_client_end_without_connection_is_noop(pg_driver):
    client = pg_driver.client()
    await client.end()
    assert client.config is None


@pytest.mark.asyncio
async def test_query_without_connection_fails():
    with pytest.raises(psycopg.OperationalError):
        await PgConnection().query("SELECT 1")


@pytest.mark.asyncio
async def test_pools_are_keyed_by_config(pg_driver):
    try:
        first = await pg_driver.pool("dbname=a")
        again = await pg_driver.pool("dbname=a")
        other = await pg_driver.pool("dbname=b")

        assert first is again
        assert first is not other
        assert first.max_size == 10
    finally:
        await pg_driver.close()

    assert first.closed
    assert other.closed


def test_query_result_defaults():
    result = QueryResult()
    assert result.rows == []
    assert result.row_count == -1
    assert result.fields == []


def test_set_driver_replaces_default():
    previous = wrappedpg.driver._driver
    try:
        marker = object()
        set_driver(marker)
        assert get_driver() is marker
    finally:
        set_driver(previous)


@pytest.mark.asyncio
async def test_close_driver_closes_and_forgets():
    closed = []

    class _Driver:
        async def close(self):
            closed.append(True)

    previous = wrappedpg.driver._driver
    try:
        set_driver(_Driver())
        await close_driver()
        assert closed == [True]
        assert wrappedpg.driver._driver is None
    finally:
        set_driver(previous)
