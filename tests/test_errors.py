from psycopg import errors as pg_errors
from psycopg_pool import PoolTimeout

from wrappedpg import ErrorKind, InvalidOperation, Stage, classify_error
from wrappedpg.core.errors import mark_stage, pg_code_of, stage_of


class _SqlStateError(Exception):
    def __init__(self, message, sqlstate):
        super().__init__(message)
        self.sqlstate = sqlstate


def test_invalid_operation():
    info = classify_error(InvalidOperation(42))

    assert info.kind == ErrorKind.INVALID_OPERATION
    assert info.stage == Stage.NORMALIZE
    assert info.retryable is False
    assert info.code == "INVALID_OPERATION"


def test_pool_timeout_is_retryable_connection_error():
    info = classify_error(PoolTimeout("couldn't get a connection after 30.00 sec"), Stage.CONNECT)

    assert info.kind == ErrorKind.CONNECTION
    assert info.code == "CONN_TIMEOUT"
    assert info.retryable is True
    assert info.exception_type == "PoolTimeout"


def test_connection_refused():
    info = classify_error(ConnectionRefusedError("Connection refused"), Stage.CONNECT)

    assert info.kind == ErrorKind.CONNECTION
    assert info.code == "CONN_REFUSED"


def test_authentication_failure_is_not_retryable():
    error = Exception('password authentication failed for user "app"')
    info = classify_error(error, Stage.CONNECT)

    assert info.kind == ErrorKind.CONNECTION
    assert info.code == "CONN_AUTH"
    assert info.retryable is False


def test_operation_error_without_sqlstate():
    info = classify_error(ValueError("boom"), Stage.OPERATION)

    assert info.kind == ErrorKind.OPERATION
    assert info.code == "PY_ValueError"
    assert info.message == "boom"


def test_deadlock_from_sqlstate():
    info = classify_error(_SqlStateError("deadlock detected", "40P01"), Stage.OPERATION)

    assert info.kind == ErrorKind.DB_DEADLOCK
    assert info.retryable is True
    assert info.pg_code == "40P01"
    assert info.code == "PG_40P01"


def test_unique_violation_from_psycopg():
    error = pg_errors.UniqueViolation("duplicate key value violates unique constraint")
    info = classify_error(error, Stage.OPERATION)

    assert pg_code_of(error) == "23505"
    assert info.kind == ErrorKind.DB_CONSTRAINT
    assert info.retryable is False


def test_statement_timeout():
    info = classify_error(_SqlStateError("canceling statement", "57014"), Stage.OPERATION)
    assert info.kind == ErrorKind.DB_TIMEOUT


def test_transaction_statement_failure():
    info = classify_error(RuntimeError("no connection"), Stage.COMMIT)
    assert info.kind == ErrorKind.TRANSACTION_STATEMENT

    info = classify_error(_SqlStateError("syntax error", "42601"), Stage.BEGIN)
    assert info.kind == ErrorKind.TRANSACTION_STATEMENT
    assert info.pg_code == "42601"


def test_to_dict_skips_unset_fields():
    d = classify_error(ValueError("boom")).to_dict()

    assert d == {
        "kind": "unknown",
        "retryable": False,
        "code": "PY_ValueError",
        "message": "boom",
        "exception_type": "ValueError",
    }


def test_to_dict_includes_stage_and_pg_code():
    d = classify_error(_SqlStateError("deadlock detected", "40001"), Stage.OPERATION).to_dict()

    assert d["stage"] == "operation"
    assert d["pg_code"] == "40001"


def test_stage_of_defaults_when_unmarked():
    assert stage_of(ValueError("boom")) is None
    assert stage_of(ValueError("boom"), Stage.OPERATION) is Stage.OPERATION


def test_mark_stage_keeps_first_stage():
    error = RuntimeError("connection lost")

    mark_stage(error, Stage.COMMIT)
    mark_stage(error, Stage.BEGIN)

    assert stage_of(error, Stage.OPERATION) is Stage.COMMIT
    assert classify_error(error, stage_of(error)).kind == ErrorKind.TRANSACTION_STATEMENT
