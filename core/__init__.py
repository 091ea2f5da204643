# Core module - error taxonomy and timeout helper
# Every error names its kind and identifier, never the credential

from .errors import (
    ErrorCategory, ErrorHandler, VaultError,
    MissingCredential, IntegrityError, CredentialUnavailable, SecurityViolation,
    ToolNotFound, InvalidToolDescriptor, InvalidArguments, InvalidFunctionBody,
    UnknownTemplate, TemplateExecutionError, FunctionToolsDisabled,
    RegistryNotInitialized, StorageError, ObjectExists, OperationTimeout,
)
from .timeouts import with_timeout

__all__ = [
    "ErrorCategory", "ErrorHandler", "VaultError",
    "MissingCredential", "IntegrityError", "CredentialUnavailable", "SecurityViolation",
    "ToolNotFound", "InvalidToolDescriptor", "InvalidArguments", "InvalidFunctionBody",
    "UnknownTemplate", "TemplateExecutionError", "FunctionToolsDisabled",
    "RegistryNotInitialized", "StorageError", "ObjectExists", "OperationTimeout",
    "with_timeout",
]
