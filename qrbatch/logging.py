"""qrbatch structured logging: audit events plus sync/async call tracing."""

import functools
import inspect
import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone

# Custom AUDIT level (between WARNING=30 and ERROR=40)
AUDIT = 35
logging.addLevelName(AUDIT, "AUDIT")

ROOT_LOGGER = "qrbatch"


def _truncate(value: object, max_len: int = 80) -> str:
    """Truncate a string for safe logging."""
    s = str(value)
    if len(s) > max_len:
        return s[:max_len] + "..."
    return s


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "src": record.name,
        }
        if hasattr(record, "event"):
            entry["event"] = record.event
        if hasattr(record, "duration_ms"):
            entry["duration_ms"] = round(record.duration_ms, 2)
        if hasattr(record, "ctx"):
            entry["ctx"] = record.ctx
        if record.getMessage() and not hasattr(record, "event"):
            entry["msg"] = record.getMessage()
        if record.exc_info and record.exc_info[1]:
            entry["traceback"] = traceback.format_exception(*record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable colored console output."""

    COLORS = {
        "DEBUG": "\033[36m",    # cyan
        "INFO": "\033[32m",     # green
        "AUDIT": "\033[35m",    # magenta
        "WARNING": "\033[33m",  # yellow
        "ERROR": "\033[31m",    # red
    }
    RESET = "\033[0m"

    def format(self, record):
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.COLORS.get(record.levelname, "")
        parts = [ts, f"{color}{record.levelname:5s}{self.RESET}", f"[{record.name}]"]

        if hasattr(record, "event"):
            parts.append(record.event)
        if hasattr(record, "duration_ms"):
            parts.append(f"({record.duration_ms:.1f}ms)")

        if hasattr(record, "ctx") and record.ctx:
            parts.append(" ".join(f"{k}={_truncate(v)}" for k, v in record.ctx.items()))
        elif record.getMessage() and not hasattr(record, "event"):
            parts.append(record.getMessage())

        if record.exc_info and record.exc_info[1]:
            parts.append(f"\n{''.join(traceback.format_exception(*record.exc_info))}")

        return " ".join(parts)


def setup_logging(level: str = "INFO", log_file: str | None = None, json_format: bool = False):
    """Configure the root qrbatch logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, AUDIT).
        log_file: If set, also write JSON logs to this file path.
        json_format: If True, use JSON format on the console too.
    """
    root = logging.getLogger(ROOT_LOGGER)
    level_name = level.upper()
    root.setLevel(AUDIT if level_name == "AUDIT" else getattr(logging, level_name, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if json_format else ConsoleFormatter())
    root.addHandler(console)

    # File handler (always JSON)
    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(JsonFormatter())
        root.addHandler(fh)


def get_logger(module_name: str) -> logging.Logger:
    """Get a logger scoped under the qrbatch namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{module_name}")


def _emit(log: logging.Logger, level: int, event: str, ctx: dict,
          duration_ms: float | None = None, exc_info=None):
    record = log.makeRecord(
        name=log.name, level=level, fn="", lno=0,
        msg="", args=(), exc_info=exc_info,
    )
    record.event = event
    record.ctx = ctx
    if duration_ms is not None:
        record.duration_ms = duration_ms
    log.handle(record)


def audit(event: str, logger: logging.Logger | None = None, **context):
    """Emit an AUDIT-level structured log entry.

    Args:
        event: Machine-readable event tag (e.g., "batch.completed").
        logger: Logger to use. Defaults to the qrbatch root.
        **context: Key-value pairs for the event context.
    """
    log = logger or logging.getLogger(ROOT_LOGGER)
    if log.isEnabledFor(AUDIT):
        _emit(log, AUDIT, event, context)


def _summarize_arg(value: object) -> str:
    if isinstance(value, (bytes, bytearray)):
        return f"<{type(value).__name__}[{len(value)}]>"
    s = repr(value)
    if len(s) > 100 or "Image" in type(value).__name__:
        return f"<{type(value).__name__}>"
    return _truncate(s, 80)


def _summarize_result(result: object) -> str:
    if isinstance(result, (str, int, float, bool)):
        return _truncate(repr(result), 80)
    if isinstance(result, (bytes, bytearray)):
        return f"{type(result).__name__}[{len(result)}]"
    if isinstance(result, (list, tuple)):
        return f"{type(result).__name__}[{len(result)}]"
    if isinstance(result, dict):
        return f"dict[{len(result)} keys]"
    return type(result).__name__


def trace(func=None, *, logger_name: str | None = None):
    """Decorator that logs function entry/exit with timing.

    Works on plain functions and on coroutine functions.

    - DEBUG on entry with arguments
    - INFO on exit with duration
    - ERROR on exception with traceback and duration
    """
    def decorator(fn):
        _logger_name = logger_name or fn.__module__.replace(f"{ROOT_LOGGER}.", "")
        log = get_logger(_logger_name)
        fn_name = fn.__name__

        def _enter(args, kwargs):
            # Skip arg formatting unless DEBUG is on
            if log.isEnabledFor(logging.DEBUG):
                _emit(log, logging.DEBUG, f"{fn_name}.enter", {
                    "args": [_summarize_arg(a) for a in args],
                    "kwargs": {k: _summarize_arg(v) for k, v in kwargs.items()},
                })

        def _done(result, start):
            elapsed = (time.perf_counter() - start) * 1000
            if log.isEnabledFor(logging.INFO):
                _emit(log, logging.INFO, f"{fn_name}.done",
                      {"result": _summarize_result(result)}, duration_ms=elapsed)

        def _error(start):
            elapsed = (time.perf_counter() - start) * 1000
            _emit(log, logging.ERROR, f"{fn_name}.error", {"function": fn_name},
                  duration_ms=elapsed, exc_info=sys.exc_info())

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                _enter(args, kwargs)
                start = time.perf_counter()
                try:
                    result = await fn(*args, **kwargs)
                except Exception:
                    _error(start)
                    raise
                _done(result, start)
                return result

            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            _enter(args, kwargs)
            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception:
                _error(start)
                raise
            _done(result, start)
            return result

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
