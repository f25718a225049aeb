"""
Error types and classification for wrappedpg.

Only InvalidOperation is raised by wrappedpg itself. Driver and operation
errors propagate to the caller unchanged; classify_error() gives them a
stable category for logging and for callers building their own retry policy:

    try:
        await pooled(settle_order, order_id)
    except Exception as e:
        info = classify_error(e, stage=Stage.OPERATION)
        if info.retryable:
            ...
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class WrappedPgError(Exception):
    """Base class for errors raised by wrappedpg itself."""


class InvalidOperation(WrappedPgError, TypeError):
    """The value in the operation slot is neither callable nor a command object."""

    def __init__(self, operation: Any = None):
        self.operation = operation
        super().__init__("Passed 'operation' should be a function or a command!")


class Stage(str, Enum):
    """Where in an invocation the error happened."""

    NORMALIZE = "normalize"
    CONNECT = "connect"
    OPERATION = "operation"
    BEGIN = "begin"
    COMMIT = "commit"
    ROLLBACK = "rollback"
    RELEASE = "release"


class ErrorKind(str, Enum):
    """Error categories."""

    INVALID_OPERATION = "invalid_operation"          # Bad operation argument
    CONNECTION = "connection"                        # Acquire/connect failure
    OPERATION = "operation"                          # User operation raised
    TRANSACTION_STATEMENT = "transaction_statement"  # BEGIN/COMMIT/ROLLBACK failed

    # Database errors reported by the server
    DB_CONSTRAINT = "db_constraint"  # Unique constraint, foreign key
    DB_DEADLOCK = "db_deadlock"      # Deadlock, serialization failure
    DB_TIMEOUT = "db_timeout"        # Statement timeout

    UNKNOWN = "unknown"


class ErrorInfo(BaseModel):
    """Standardized description of a failed invocation."""

    kind: ErrorKind = Field(
        default=ErrorKind.UNKNOWN,
        description="Error category"
    )
    retryable: bool = Field(
        default=False,
        description="Whether another attempt could succeed"
    )
    code: str = Field(
        default="UNKNOWN",
        description="Error code (PG_40P01, CONN_TIMEOUT, PY_ValueError, ...)"
    )
    message: str = Field(
        default="Unknown error",
        description="Human-readable error message"
    )
    stage: Optional[Stage] = Field(
        None, description="Invocation stage that failed"
    )
    pg_code: Optional[str] = Field(
        None, description="PostgreSQL SQLSTATE (e.g., 40001, 40P01, 23505)"
    )
    exception_type: Optional[str] = Field(
        None, description="Python exception class name"
    )

    def to_dict(self) -> dict[str, Any]:
        d = {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "code": self.code,
            "message": self.message,
        }
        if self.stage is not None:
            d["stage"] = self.stage.value
        if self.pg_code is not None:
            d["pg_code"] = self.pg_code
        if self.exception_type is not None:
            d["exception_type"] = self.exception_type
        return d


def mark_stage(error: BaseException, stage: Stage) -> None:
    """Record the invocation stage an error came from, unless already recorded."""
    if getattr(error, "wrappedpg_stage", None) is None:
        try:
            error.wrappedpg_stage = stage
        except AttributeError:
            error.add_note(f"wrappedpg stage: {stage.value}")


def stage_of(error: BaseException, default: Optional[Stage] = None) -> Optional[Stage]:
    """The stage recorded by mark_stage(), or ``default``."""
    return getattr(error, "wrappedpg_stage", None) or default


def pg_code_of(error: BaseException) -> Optional[str]:
    """Return the SQLSTATE carried by a psycopg error, if any."""
    code = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
    return code if isinstance(code, str) else None


def classify_postgres_error(error: BaseException, stage: Optional[Stage] = None) -> Optional[ErrorInfo]:
    """Classify errors carrying a SQLSTATE. Returns None when there is none."""
    pg_code = pg_code_of(error)
    if not pg_code:
        return None

    code = f"PG_{pg_code}"
    exception_type = type(error).__name__

    if pg_code in ("40001", "40P01"):
        kind, retryable = ErrorKind.DB_DEADLOCK, True
    elif pg_code.startswith("23"):
        kind, retryable = ErrorKind.DB_CONSTRAINT, False
    elif pg_code.startswith("08"):
        kind, retryable = ErrorKind.CONNECTION, True
    elif pg_code == "57014":
        kind, retryable = ErrorKind.DB_TIMEOUT, True
    elif stage in (Stage.BEGIN, Stage.COMMIT, Stage.ROLLBACK):
        kind, retryable = ErrorKind.TRANSACTION_STATEMENT, False
    else:
        kind, retryable = ErrorKind.OPERATION, False

    return ErrorInfo(
        kind=kind,
        retryable=retryable,
        code=code,
        message=str(error),
        stage=stage,
        pg_code=pg_code,
        exception_type=exception_type,
    )


def classify_connection_error(error: BaseException, stage: Optional[Stage] = Stage.CONNECT) -> ErrorInfo:
    """Classify acquisition/connect failures."""
    error_str = str(error).lower()
    exception_type = type(error).__name__

    if "timeout" in error_str or exception_type == "PoolTimeout":
        code = "CONN_TIMEOUT"
    elif "connection refused" in error_str:
        code = "CONN_REFUSED"
    elif "password" in error_str or "authentication" in error_str:
        return ErrorInfo(
            kind=ErrorKind.CONNECTION,
            retryable=False,
            code="CONN_AUTH",
            message=str(error),
            stage=stage,
            exception_type=exception_type,
        )
    else:
        code = "CONN_ERROR"

    return ErrorInfo(
        kind=ErrorKind.CONNECTION,
        retryable=True,
        code=code,
        message=str(error),
        stage=stage,
        pg_code=pg_code_of(error),
        exception_type=exception_type,
    )


def classify_error(error: BaseException, stage: Optional[Stage] = None) -> ErrorInfo:
    """
    Classify an exception raised during an invocation.

    Args:
        error: The exception to classify
        stage: Invocation stage the error surfaced from

    Returns:
        Standardized ErrorInfo
    """
    exception_type = type(error).__name__

    if isinstance(error, InvalidOperation):
        return ErrorInfo(
            kind=ErrorKind.INVALID_OPERATION,
            retryable=False,
            code="INVALID_OPERATION",
            message=str(error),
            stage=stage or Stage.NORMALIZE,
            exception_type=exception_type,
        )

    if stage == Stage.CONNECT:
        return classify_connection_error(error, stage)

    info = classify_postgres_error(error, stage)
    if info is not None:
        return info

    if stage in (Stage.BEGIN, Stage.COMMIT, Stage.ROLLBACK):
        kind = ErrorKind.TRANSACTION_STATEMENT
    elif stage == Stage.OPERATION:
        kind = ErrorKind.OPERATION
    else:
        kind = ErrorKind.UNKNOWN

    return ErrorInfo(
        kind=kind,
        retryable=False,
        code=f"PY_{exception_type}",
        message=str(error),
        stage=stage,
        exception_type=exception_type,
    )


__all__ = [
    "WrappedPgError",
    "InvalidOperation",
    "Stage",
    "ErrorKind",
    "ErrorInfo",
    "mark_stage",
    "stage_of",
    "pg_code_of",
    "classify_postgres_error",
    "classify_connection_error",
    "classify_error",
]
