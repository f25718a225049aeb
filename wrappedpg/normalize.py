from typing import Any, NamedTuple, Optional, Sequence

from wrappedpg.core.errors import InvalidOperation
from wrappedpg.operation import OperationWrapper, is_operation, wrap


class CallDescriptor(NamedTuple):
    """A normalized ``pooled``/``non_pooled`` call."""

    config: Optional[Any]
    operation: OperationWrapper
    args: tuple


def normalize_call(args: Sequence[Any]) -> CallDescriptor:
    """
    Split ``(config?, operation, *args)`` into a CallDescriptor.

    The first argument is the operation when it is callable or a command,
    in which case the configuration is omitted (None). Otherwise it is the
    configuration and the operation follows it. Raises InvalidOperation
    when the operation slot is empty or holds anything else.
    """
    args = tuple(args)
    if args and is_operation(args[0]):
        config, rest = None, args
    else:
        config, rest = (args[0] if args else None), args[1:]

    if not rest:
        raise InvalidOperation(None)
    operation, extra = rest[0], rest[1:]
    if not is_operation(operation):
        raise InvalidOperation(operation)
    return CallDescriptor(config=config, operation=wrap(operation), args=extra)


__all__ = ["CallDescriptor", "normalize_call"]
