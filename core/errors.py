"""
Error Handling Module
---------------------
Typed errors with classification and user-facing messages.

Rules:
- Every error names its kind and the relevant identifier
- Messages pass through the Redactor, error paths included
- No automatic retry here; retry is an orchestrator decision
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging

from infra.logging import get_logger
from security.redactor import redact


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    CREDENTIAL = auto()   # Credential missing or already consumed
    INTEGRITY = auto()    # Fallback source failed its hash check
    SECURITY = auto()     # Guarded accessor called; always fatal
    NOT_FOUND = auto()    # Tool or object absent
    VALIDATION = auto()   # Descriptor, schema or argument validation failed
    EXECUTION = auto()    # Template or function failed to build or run
    STORAGE = auto()      # Object store failure
    TIMEOUT = auto()      # Operation raced past its timer
    CAPABILITY = auto()   # Feature switched off by the deployment profile


class VaultError(Exception):
    """
    Base error with category and identifier.

    The identifier is a tool name, an object key, or "credential".
    """
    category: ErrorCategory = ErrorCategory.EXECUTION
    kind: str = "VaultError"

    def __init__(self, identifier: str, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.identifier = identifier
        self.message = redact(message or self.default_message())
        self.details = redact(details) if details else {}
        super().__init__(f"{self.kind} [{self.identifier}]: {self.message}")

    def default_message(self) -> str:
        return "operation failed"

    @property
    def fatal(self) -> bool:
        return self.category == ErrorCategory.SECURITY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "category": self.category.name,
            "identifier": self.identifier,
            "message": self.message,
            "details": self.details,
        }

    def user_message(self) -> str:
        return ErrorHandler.USER_MESSAGES.get(self.category, "An error occurred.").format(
            identifier=self.identifier
        )

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.kind = cls.__name__


# Secret store

class MissingCredential(VaultError):
    category = ErrorCategory.CREDENTIAL

    def default_message(self) -> str:
        return "no credential source yielded a value"


class IntegrityError(VaultError):
    category = ErrorCategory.INTEGRITY

    def default_message(self) -> str:
        return "fallback source hash mismatch"


class CredentialUnavailable(VaultError):
    category = ErrorCategory.CREDENTIAL

    def default_message(self) -> str:
        return "credential not available; load() it first"


class SecurityViolation(VaultError):
    """Raised by guarded accessors. Never catch and ignore."""
    category = ErrorCategory.SECURITY

    def default_message(self) -> str:
        return "this accessor exists to prevent accidental exposure of secrets"


# Tool registry and executors

class ToolNotFound(VaultError):
    category = ErrorCategory.NOT_FOUND

    def default_message(self) -> str:
        return "tool not found"


class InvalidToolDescriptor(VaultError):
    category = ErrorCategory.VALIDATION

    def default_message(self) -> str:
        return "stored descriptor could not be decoded"


class InvalidArguments(VaultError):
    category = ErrorCategory.VALIDATION

    def default_message(self) -> str:
        return "arguments do not match the tool schema"


class InvalidFunctionBody(VaultError):
    category = ErrorCategory.EXECUTION

    def default_message(self) -> str:
        return "function body could not be compiled"


class UnknownTemplate(VaultError):
    category = ErrorCategory.VALIDATION

    def default_message(self) -> str:
        return "unknown template type"


class TemplateExecutionError(VaultError):
    category = ErrorCategory.EXECUTION

    def default_message(self) -> str:
        return "template execution failed"


class FunctionToolsDisabled(VaultError):
    category = ErrorCategory.CAPABILITY

    def default_message(self) -> str:
        return "function-body tools are disabled in this deployment profile"


class RegistryNotInitialized(VaultError):
    category = ErrorCategory.STORAGE

    def default_message(self) -> str:
        return "no backing bucket resolved"


# Storage

class StorageError(VaultError):
    category = ErrorCategory.STORAGE


class ObjectExists(StorageError):
    def default_message(self) -> str:
        return "object already exists and overwrite is false"


class OperationTimeout(VaultError):
    category = ErrorCategory.TIMEOUT

    def default_message(self) -> str:
        return "operation timed out"


@dataclass
class ErrorRecord:
    """A handled error, kept for statistics."""
    kind: str
    category: ErrorCategory
    identifier: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


class ErrorHandler:
    """
    Central error handler with logging and user messages.

    SecurityViolation is logged and re-raised, never absorbed.
    """

    USER_MESSAGES: Dict[ErrorCategory, str] = {
        ErrorCategory.CREDENTIAL: "The credential is not available.",
        ErrorCategory.INTEGRITY: "The credential file failed its integrity check.",
        ErrorCategory.SECURITY: "Refused: that operation would expose a secret.",
        ErrorCategory.NOT_FOUND: "Nothing named '{identifier}' was found.",
        ErrorCategory.VALIDATION: "'{identifier}' is not valid.",
        ErrorCategory.EXECUTION: "'{identifier}' failed to run.",
        ErrorCategory.STORAGE: "Storage is unavailable for '{identifier}'.",
        ErrorCategory.TIMEOUT: "'{identifier}' took too long.",
        ErrorCategory.CAPABILITY: "'{identifier}' needs a capability this deployment does not enable.",
    }

    def __init__(self):
        self._logger = get_logger("errors")
        self._history: List[ErrorRecord] = []
        self._max_history = 100

    def handle(self, error: VaultError) -> str:
        """Log an error and return a user-facing message."""
        self._log_error(error)

        self._history.append(ErrorRecord(
            kind=error.kind,
            category=error.category,
            identifier=error.identifier,
            message=error.message,
        ))
        if len(self._history) > self._max_history:
            self._history.pop(0)

        if error.fatal:
            raise error

        return f"{error.user_message()} ({error.kind}: {error.identifier})"

    def _log_error(self, error: VaultError) -> None:
        level_map = {
            ErrorCategory.NOT_FOUND: logging.INFO,
            ErrorCategory.VALIDATION: logging.WARNING,
            ErrorCategory.CAPABILITY: logging.WARNING,
            ErrorCategory.CREDENTIAL: logging.ERROR,
            ErrorCategory.EXECUTION: logging.ERROR,
            ErrorCategory.STORAGE: logging.ERROR,
            ErrorCategory.TIMEOUT: logging.ERROR,
            ErrorCategory.INTEGRITY: logging.CRITICAL,
            ErrorCategory.SECURITY: logging.CRITICAL,
        }
        level = level_map.get(error.category, logging.ERROR)
        self._logger.log(level, str(error), extra={"details": error.details})

    def get_error_stats(self) -> Dict[str, int]:
        stats: Dict[str, int] = {}
        for record in self._history:
            stats[record.kind] = stats.get(record.kind, 0) + 1
        return stats

    def clear_history(self) -> None:
        self._history.clear()
