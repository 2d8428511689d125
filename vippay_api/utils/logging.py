"""Structured JSON logging utilities.

- JSON format for log aggregation (one object per line)
- Includes request_id / user_id / out_trade_no from context variables
- Standard fields: timestamp, level, message, module, func, line
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from vippay_api.context import out_trade_no_var, request_id_var, user_id_var
from vippay_api.utils.sanitize import sanitize_exc, sanitize_obj, sanitize_str

# LogRecord attributes that are never copied as extra fields
_RESERVED_ATTRS = frozenset({
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
})


class JSONFormatter(logging.Formatter):
    """JSON log formatter with request context.

    Formats log records as JSON with standard fields:
    - timestamp: ISO 8601 UTC
    - level: log level (INFO, ERROR, etc.)
    - message: log message
    - module: Python module name
    - func: function name
    - line: line number
    - request_id: from context variable (if available)
    - user_id: from context variable (if available)
    - out_trade_no: from context variable (webhook path)

    Extra fields passed via ``extra=`` are sanitized before serialization.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": sanitize_str(record.getMessage()),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        user_id = user_id_var.get()
        if user_id:
            log_data["user_id"] = user_id

        out_trade_no = out_trade_no_var.get()
        if out_trade_no:
            log_data["out_trade_no"] = out_trade_no

        # Add exception info if present (sanitized traceback)
        if record.exc_info:
            log_data["exc_info"] = sanitize_exc(record.exc_info)

        # Add any extra fields from logger.info(..., extra={...}); sensitive keys are redacted
        extras = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        log_data.update(sanitize_obj(extras))

        return json.dumps(log_data, default=str)


def configure_json_logging(log_level: str = "INFO") -> None:
    """Configure root logger with JSON formatter.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
