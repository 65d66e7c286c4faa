"""
Structured JSON logging for the order engine.

Every log line is a single JSON object so it can be shipped to CloudWatch
as-is and filtered locally with jq. Context such as `order_id`, `stage` or
`event` is passed through `extra={...}` and lands as top-level keys.
"""
import functools
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'taskName', 'getMessage',
}


def _context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {}
    for attr_name, attr_value in record.__dict__.items():
        if attr_name in _STANDARD_ATTRS or attr_name.startswith('_'):
            continue
        if isinstance(attr_value, (str, int, float, bool, type(None), dict, list)):
            fields[attr_name] = attr_value
        else:
            fields[attr_name] = str(attr_value)
    return fields


class JSONFormatter(logging.Formatter):
    """Single-line JSON records for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, value in _context_fields(record).items():
            log_data.setdefault(key, value)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class PrettyFormatter(logging.Formatter):
    """Colored one-line records for local development."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m',
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        timestamp = datetime.now(timezone.utc).strftime('%H:%M:%S.%f')[:-3]

        parts = [
            f"{color}[{record.levelname}]{reset}",
            timestamp,
            f"{record.name}:",
            record.getMessage(),
        ]
        context = _context_fields(record)
        if context:
            parts.append("(" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")")

        result = ' '.join(parts)
        if record.exc_info:
            result += '\n' + self.formatException(record.exc_info)
        return result


def setup_logging(
    app_name: str = 'moaawen',
    log_level: str = 'INFO',
    log_format: str = 'json',
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure structured logging for the application.

    Args:
        app_name: Name of the application logger (parent of all module loggers)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type ('json' or 'pretty')
        log_file: Optional file path for file-based logging (always JSON)

    Returns:
        Configured logger instance

    Example:
        >>> logger = setup_logging('moaawen', 'INFO', 'json')
        >>> logger.info('Order confirmed', extra={'order_id': 'abc'})
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(app_name)
    logger.setLevel(numeric_level)
    logger.handlers = []

    formatter = PrettyFormatter() if log_format == 'pretty' else JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Failed to setup file logging: {e}")

    logger.propagate = False
    return logger


def setup_logging_from_config() -> logging.Logger:
    from moaawen.config import config
    return setup_logging('moaawen', config.LOG_LEVEL, config.LOG_FORMAT, config.LOG_FILE)


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """
    Log with additional context fields.

    Example:
        >>> log_with_context(logger, logging.INFO, "Item added",
        ...                  order_id="o-1", stage="collecting_info")
    """
    logger.log(level, message, extra=context)


def log_operation(level: str = 'DEBUG'):
    """
    Decorator that logs an engine operation's outcome and duration.

    Result envelopes are summarized by their `success` / `error` fields.
    Exceptions are logged with the traceback and re-raised.
    """
    def decorator(func: Callable) -> Callable:
        logger = logging.getLogger(func.__module__)
        log_level = getattr(logging, level.upper(), logging.DEBUG)

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"{func.__qualname__}() failed after {round(duration, 2)}ms",
                    extra={'error_type': type(e).__name__, 'duration_ms': round(duration, 2)},
                    exc_info=True,
                )
                raise

            duration = (time.perf_counter() - start_time) * 1000
            if logger.isEnabledFor(log_level):
                info: Dict[str, Any] = {'duration_ms': round(duration, 2)}
                if isinstance(result, dict) and 'success' in result:
                    info['status'] = 'success' if result['success'] else 'rejected'
                    if result.get('error'):
                        info['error_code'] = result['error']
                logger.log(log_level, f"{func.__qualname__}() completed", extra=info)
            return result

        return wrapper
    return decorator
