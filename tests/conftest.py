import pytest

import wrappedpg.driver
from wrappedpg.driver import set_driver


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    def __eq__(self, other):
        return isinstance(other, FakeResult) and other.rows == self.rows


class FakeConnection:
    """Records issued statements and how many times it was released/closed."""

    def __init__(self, config=None, rows=None, failures=None, connect_error=None, dispose_error=None):
        self.config = config
        self.rows = rows if rows is not None else []
        self.failures = failures or {}
        self.connect_error = connect_error
        self.dispose_error = dispose_error
        self.statements = []
        self.params = []
        self.connected = False
        self.disposed = 0

    async def query(self, sql, params=None):
        self.statements.append(sql)
        self.params.append(params)
        if sql in self.failures:
            raise self.failures[sql]
        return FakeResult(self.rows)

    async def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def end(self):
        self.disposed += 1
        if self.dispose_error is not None:
            raise self.dispose_error

    @property
    def destroyed(self):
        return self.disposed > 0


class FakeDriver:
    """Driver handing out FakeConnections for both pooled and dedicated use."""

    def __init__(self, rows=None):
        self.rows = rows if rows is not None else []
        self.failures = {}
        self.connection_error = None
        self.dispose_error = None
        self.connections = []

    def _new_connection(self, config):
        connection = FakeConnection(
            config,
            rows=self.rows,
            failures=self.failures,
            connect_error=self.connection_error,
            dispose_error=self.dispose_error,
        )
        self.connections.append(connection)
        return connection

    async def connect(self, config=None):
        if self.connection_error is not None:
            raise self.connection_error
        connection = self._new_connection(config)

        async def release():
            connection.disposed += 1
            if self.dispose_error is not None:
                raise self.dispose_error

        return connection, release

    def client(self, config=None):
        return self._new_connection(config)


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def default_driver(driver):
    previous = wrappedpg.driver._driver
    set_driver(driver)
    yield driver
    set_driver(previous)


@pytest.fixture
def connection():
    return FakeConnection()
