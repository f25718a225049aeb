import os
import re
import sys
import json
import logging
import traceback
from datetime import datetime

from wrappedpg.core.logging_context import ContextFilter


SUCCESS_LEVEL = 25
LOG_SEVERITY = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "SUCCESS",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL"
}

# Record attributes that are never rendered as extras
RESERVED_ATTRS = frozenset([
    "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "process", "processName", "scope", "name", "taskName",
    "message",
])

logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


class CustomLogger(logging.Logger):
    def success(self, message, *args, **kwargs):
        if self.isEnabledFor(SUCCESS_LEVEL):
            self.log(SUCCESS_LEVEL, message, *args, **kwargs, stacklevel=2)


def stringify_extra(value):
    if isinstance(value, (list, dict)):
        return str(value)
    else:
        return value


def extra_items(record) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in RESERVED_ATTRS
    }


class CustomFormatter(logging.Formatter):

    def __init__(self, fmt="%(message)s", include_location=False):
        super().__init__(fmt)
        self.include_location = include_location

    def format(self, record):
        level_name = LOG_SEVERITY.get(record.levelname, record.levelname)
        scope = getattr(record, "scope", "")
        location = ""
        if self.include_location:
            location = f"{record.pathname}:{record.lineno}\n({record.module}:{record.funcName}:{record.lineno})"

        metadata_line = f"{datetime.now().isoformat()} [{level_name}] {scope} {location}".strip()

        message = record.getMessage()
        message_split = message.splitlines()
        if len(message_split) > 1:
            message_line = f"     Message: {message_split[0]}"
            for line in message_split[1:]:
                message_line += f"\n             {line}"
        else:
            message_line = f"     Message: {message}"

        extras = [f"{key}: {stringify_extra(value)}" for key, value in extra_items(record).items()]
        extra_info = ""
        if extras:
            extra_info = f"\n     {' '.join(extras)}"
        formatted_log = f"{metadata_line}\n{message_line}{extra_info}"
        if record.exc_info:
            # clickable "File path:line" references for editors
            format_exception = traceback.format_exception(*record.exc_info)
            format_exception = [
                re.sub(r'File "([^"]+)", line (\d+),', r'File "\1:\2"', line)
                for line in format_exception
            ]
            formatted_log += "\n" + "".join(format_exception)
        return formatted_log


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_dict = {
            "level": record.levelname,
            "message": record.getMessage(),
            "time": self.formatTime(record, self.datefmt),
            "logger": record.name,
        }
        if hasattr(record, "scope"):
            log_dict["scope"] = record.scope
        log_dict["location"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        extras = extra_items(record)
        if extras:
            log_dict["extra"] = {key: stringify_extra(value) for key, value in extras.items()}
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


# Defaults until get_settings() calls configure_logging()
_log_level = os.environ.get("WRAPPEDPG_LOG_LEVEL", "INFO").strip().upper() or "INFO"
_log_json = _env_flag("WRAPPEDPG_LOG_JSON")
# name -> include_location of every logger created by setup_logger()
_loggers = {}


def _formatter(include_location: bool, use_json: bool) -> logging.Formatter:
    if use_json:
        return JSONFormatter()
    return CustomFormatter(include_location=include_location)


def setup_logger(name: str, include_location=False, use_json=None):
    """
    Create or fetch a logger writing to stdout.

    Level and output format follow the last configure_logging() call,
    which get_settings() makes; before that WRAPPEDPG_LOG_LEVEL (default INFO)
    and WRAPPEDPG_LOG_JSON from the process environment apply.
    """
    logging.setLoggerClass(CustomLogger)
    logger = logging.getLogger(name)
    if not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter())

    if use_json is None:
        use_json = _log_json

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(logging.DEBUG)
        stream_handler.setFormatter(_formatter(include_location, use_json))
        logger.addHandler(stream_handler)
    logger.setLevel(_log_level)
    logger.propagate = False
    _loggers[name] = include_location
    return logger


def configure_logging(level: str, use_json: bool) -> None:
    """Apply level and output format to every wrappedpg logger, existing and future."""
    global _log_level, _log_json
    _log_level = level.strip().upper() or "INFO"
    _log_json = use_json
    for name, include_location in _loggers.items():
        logger = logging.getLogger(name)
        logger.setLevel(_log_level)
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(_formatter(include_location, use_json))
