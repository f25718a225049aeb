import inspect
from typing import Any, Awaitable, Callable, Union

from wrappedpg.core.errors import InvalidOperation


def is_command(operation: Any) -> bool:
    """
    True for objects exposing an ``execute`` method.

    Bare functions and classes are not commands even if they carry an
    ``execute`` attribute.
    """
    if operation is None:
        return False
    if inspect.isroutine(operation) or inspect.isclass(operation):
        return False
    return callable(getattr(operation, "execute", None))


def is_operation(operation: Any) -> bool:
    """True if the value may sit in the operation slot."""
    return is_command(operation) or callable(operation)


Operation = Union[Callable[..., Any], "OperationWrapper", Any]


class OperationWrapper:
    """
    Wraps an operation into a command with a coroutine ``execute`` method.

    The wrapped operation is either a callable taking ``(connection, *args)``
    and returning a value or an awaitable, or a command object whose own
    ``execute(connection, *args)`` is called as is.
    """

    def __init__(self, operation: Operation):
        if not is_operation(operation):
            raise InvalidOperation(operation)
        self.operation = operation
        self._invoke = self._wrap_operation(operation)

    def _wrap_operation(self, operation: Operation) -> Callable[..., Awaitable[Any]]:
        target = operation.execute if is_command(operation) else operation

        async def invoke(connection, *args):
            result = target(connection, *args)
            if inspect.isawaitable(result):
                result = await result
            return result

        return invoke

    async def execute(self, connection, *args) -> Any:
        """Run the wrapped operation with an established connection."""
        return await self._invoke(connection, *args)

    def __repr__(self):
        return f"{type(self).__name__}({self.operation!r})"


def wrap(operation: Operation) -> OperationWrapper:
    """Wrap an operation; wrappers are returned unchanged."""
    if isinstance(operation, OperationWrapper):
        return operation
    return OperationWrapper(operation)


__all__ = ["is_command", "is_operation", "OperationWrapper", "wrap"]
