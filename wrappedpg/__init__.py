"""
wrappedpg
=========

Run operations on PostgreSQL connections without managing them:

    from wrappedpg import pooled, non_pooled, query, transaction

    async def find_user(conn, user_id):
        result = await conn.query("SELECT * FROM users WHERE id = %s", (user_id,))
        return result.rows[0] if result.rows else None

    user = await pooled("postgresql://app@localhost/app", find_user, 42)
    rows, result = await query("SELECT now()")

The connection is taken (or opened), passed to the operation and released
(or closed) whatever the outcome. transaction() brackets an operation with
BEGIN/COMMIT/ROLLBACK. set_driver() swaps the process-wide driver.
"""

__version__ = "1.0.0"

from .core.errors import InvalidOperation, WrappedPgError, ErrorKind, ErrorInfo, Stage, classify_error
from .operation import OperationWrapper, is_command, wrap
from .transaction import TransactionWrapper, transaction
from .normalize import CallDescriptor, normalize_call
from .driver import QueryResult, PsycopgDriver, get_driver, set_driver, close_driver
from .runner import LifecycleRunner, pooled, non_pooled, query

__all__ = [
    "InvalidOperation",
    "WrappedPgError",
    "ErrorKind",
    "ErrorInfo",
    "Stage",
    "classify_error",
    "OperationWrapper",
    "is_command",
    "wrap",
    "TransactionWrapper",
    "transaction",
    "CallDescriptor",
    "normalize_call",
    "QueryResult",
    "PsycopgDriver",
    "get_driver",
    "set_driver",
    "close_driver",
    "LifecycleRunner",
    "pooled",
    "non_pooled",
    "query",
]
