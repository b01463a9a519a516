from __future__ import annotations

import contextvars
import logging
from typing import Dict, List, Optional

_TRACE_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("meetscribe_trace_id", default=None)

# logger_name -> stack of pushed file handlers
_FILE_HANDLERS: Dict[str, List[logging.Handler]] = {}

_FORMAT = "[%(levelname)s] %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s trace=%(trace_id)s %(message)s"


class _TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _TRACE_ID.get() or "-"
        return True


def get_logger(name: str = "meetscribe") -> logging.Logger:
    root_name = name.split(".", 1)[0]
    if root_name != name:
        # Child loggers propagate to the package logger (stream + job file handlers).
        get_logger(root_name)
        return logging.getLogger(name)

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(_TraceIdFilter())
    logger.addHandler(handler)
    return logger


def set_log_level(level: str, logger_name: str = "meetscribe") -> None:
    get_logger(logger_name).setLevel(level.upper())


def set_trace_id(trace_id: str) -> None:
    _TRACE_ID.set(trace_id)


def clear_trace_id() -> None:
    _TRACE_ID.set(None)


def get_trace_id() -> Optional[str]:
    return _TRACE_ID.get()


def push_file_log(*, log_path: str, logger_name: str = "meetscribe") -> logging.Handler:
    """
    Attach a file handler to `logger_name` until the matching pop_file_log().
    Handlers stack, so nested jobs in one process each get their own file.
    """
    logger = get_logger(logger_name)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    handler.addFilter(_TraceIdFilter())
    logger.addHandler(handler)
    _FILE_HANDLERS.setdefault(logger_name, []).append(handler)
    return handler


def pop_file_log(*, logger_name: str = "meetscribe") -> None:
    stack = _FILE_HANDLERS.get(logger_name) or []
    if not stack:
        return
    handler = stack.pop()
    logging.getLogger(logger_name).removeHandler(handler)
    handler.close()
