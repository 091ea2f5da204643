# Infrastructure module - redacting logging and configuration

from .logging import (
    get_logger, configure_logging, reset_logging,
    RedactionFilter, JSONFormatter, OperationContext, get_operation_id,
)
from .config import ConfigManager, VaultConfig, DeploymentProfile

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "reset_logging",
    "RedactionFilter",
    "JSONFormatter",
    "OperationContext",
    "get_operation_id",
    # Config
    "ConfigManager",
    "VaultConfig",
    "DeploymentProfile",
]
