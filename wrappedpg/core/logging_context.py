import logging
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping

# Fields attached to every wrappedpg log record emitted in the current task
_context: ContextVar[Mapping[str, Any]] = ContextVar(
    "wrappedpg_log_context", default=MappingProxyType({})
)


def current_context() -> Dict[str, Any]:
    """Copy of the fields bound in the current task."""
    return dict(_context.get())


class ContextFilter(logging.Filter):
    """Copy bound fields onto records; values passed through ``extra`` win."""

    def filter(self, record):
        for key, value in _context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


@contextmanager
def LoggingContext(**fields) -> Iterator[Dict[str, Any]]:
    """
    Bind fields to log records for the duration of the block:

        with LoggingContext(mode="pooled"):
            logger.debug("Connection acquired")   # record.mode == "pooled"

    Blocks nest; each asyncio task sees only what it bound itself.
    """
    token = _context.set(MappingProxyType({**_context.get(), **fields}))
    try:
        yield current_context()
    finally:
        _context.reset(token)
