import asyncio
from typing import Any

from wrappedpg.core.errors import Stage, classify_error, mark_stage
from wrappedpg.core.logger import setup_logger
from wrappedpg.operation import Operation, OperationWrapper

logger = setup_logger(__name__, include_location=True)


class TransactionWrapper(OperationWrapper):
    """
    Wraps an operation into a transaction.

    - issues BEGIN before passing control to the operation
    - issues COMMIT when the operation succeeds and returns its result
    - issues ROLLBACK when the operation fails or its task is cancelled,
      then re-raises

    BEGIN/COMMIT failures are re-raised unchanged, tagged with their stage
    for classify_error(). A ROLLBACK failure never hides the operation error:
    the rollback error is logged and attached to the original one as
    ``rollback_error``. Transactions are not nested; wrapping twice issues
    BEGIN twice.
    """

    async def execute(self, connection, *args) -> Any:
        await self._statement(connection, "BEGIN", Stage.BEGIN)
        try:
            result = await super().execute(connection, *args)
        except BaseException as error:
            await self._rollback(connection, error)
            raise
        await self._statement(connection, "COMMIT", Stage.COMMIT)
        return result

    @staticmethod
    async def _statement(connection, sql: str, stage: Stage) -> None:
        try:
            await connection.query(sql)
        except Exception as e:
            mark_stage(e, stage)
            raise

    @staticmethod
    async def _rollback(connection, error: BaseException) -> None:
        try:
            # shielded so a second cancellation cannot leave the transaction open
            await asyncio.shield(connection.query("ROLLBACK"))
        except Exception as rollback_error:
            info = classify_error(rollback_error, Stage.ROLLBACK)
            logger.error(
                f"ROLLBACK failed after operation error {error!r}: {rollback_error!r}",
                extra={"scope": "transaction", "error_info": info.to_dict()},
            )
            try:
                error.rollback_error = rollback_error
            except AttributeError:
                pass
            error.add_note(f"ROLLBACK also failed: {rollback_error!r}")


def transaction(operation: Operation) -> TransactionWrapper:
    """
    Wrap an operation into BEGIN/COMMIT/ROLLBACK. Usable as a decorator:

        @transaction
        async def transfer(conn, src, dst, amount):
            await conn.query("UPDATE account SET balance = balance - %s WHERE id = %s", (amount, src))
            await conn.query("UPDATE account SET balance = balance + %s WHERE id = %s", (amount, dst))

        await pooled(transfer, 1, 2, 100)
    """
    return TransactionWrapper(operation)


__all__ = ["TransactionWrapper", "transaction"]
