"""
Vault Centralized Logging
-------------------------
Redacting, structured logging with operation_id propagation.

Design:
- Every record passes through RedactionFilter before any sink write
- Filters are attached to vault loggers (get_logger) and to every
  handler configure_logging installs; nothing is monkey-patched
- Console (Rich) and file (JSON lines) output
- Severity discipline: INFO=state, WARNING=recoverable, ERROR=abort

Usage:
    from infra.logging import get_logger, OperationContext

    logger = get_logger("tools.registry")

    with OperationContext("refresh") as op_id:
        logger.info("Refreshing catalog")
"""

from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone

from security.redactor import RedactionRules, DEFAULT_RULES, redact

ROOT_LOGGER = "vault"

_operation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "operation_id", default=None
)


def generate_operation_id(prefix: str = "op") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def get_operation_id() -> Optional[str]:
    return _operation_id_var.get()


class OperationContext:
    """
    Scope log records to one operation (a catalog refresh, a store call).

    Usage:
        with OperationContext("refresh") as op_id:
            logger.info("...")
    """

    def __init__(self, prefix: str = "op", operation_id: Optional[str] = None):
        self._operation_id = operation_id or generate_operation_id(prefix)
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _operation_id_var.set(self._operation_id)
        return self._operation_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _operation_id_var.reset(self._token)


class RedactionFilter(logging.Filter):
    """
    Rewrites a record through the Redactor.

    The formatted message replaces msg/args, extra fields and exception
    text are redacted too. The exception is kept only as redacted exc_text;
    exc_info is cleared. Applying it twice is harmless.
    """

    EXTRA_FIELDS = ("details", "tool_args", "config")

    def __init__(self, rules: Optional[RedactionRules] = None):
        super().__init__()
        self._rules = rules or DEFAULT_RULES

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            message = str(record.msg)
        record.msg = redact(message, self._rules)
        record.args = None

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                setattr(record, key, redact(getattr(record, key), self._rules))

        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text, self._rules)
        # Sinks render exc_text; exc_info would be re-formatted unredacted
        record.exc_info = None
        if record.stack_info:
            record.stack_info = redact(record.stack_info, self._rules)
        return True


class OperationIdFilter(logging.Filter):
    """Adds operation_id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "operation_id", None) is None:
            record.operation_id = get_operation_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "operation_id": getattr(record, "operation_id", "-"),
        }

        if record.exc_text:
            log_entry["exception"] = record.exc_text
        elif record.exc_info:
            log_entry["exception"] = redact(self.formatException(record.exc_info))

        for key in ("tool_name", "details", "success"):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


def _console_handler() -> logging.Handler:
    try:
        from rich.logging import RichHandler
        return RichHandler(rich_tracebacks=False, show_path=False, markup=False)
    except ImportError:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("[%(levelname)-7s] %(name)s: %(message)s"))
        return handler


_logging_initialized = False


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = True,
    rules: Optional[RedactionRules] = None,
) -> None:
    """
    Configure the vault logging tree.

    Args:
        level: Logging level (default INFO)
        log_dir: Directory for log files (default: ./logs)
        console: Enable console output
        file: Enable JSON file output
        rules: Redaction rules (default rule set when None)
    """
    global _logging_initialized

    if _logging_initialized:
        return

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    redaction = RedactionFilter(rules)
    operation = OperationIdFilter()

    if console:
        console_handler = _console_handler()
        console_handler.setLevel(level)
        console_handler.addFilter(redaction)
        console_handler.addFilter(operation)
        root_logger.addHandler(console_handler)

    if file:
        log_path = Path(log_dir) if log_dir else Path("logs")
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            str(log_path / "vault.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(redaction)
        file_handler.addFilter(operation)
        root_logger.addHandler(file_handler)

    _logging_initialized = True


def reset_logging() -> None:
    """Drop installed handlers so configure_logging can run again."""
    global _logging_initialized
    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    _logging_initialized = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger in the vault namespace with redaction attached.

    Args:
        name: Logger name (prefixed with 'vault.' if not already)
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    logger = logging.getLogger(name)
    if not any(isinstance(f, RedactionFilter) for f in logger.filters):
        logger.addFilter(RedactionFilter())
    return logger
