"""
Configuration Manager
---------------------
Loads configuration from YAML with environment variable overrides.

Rules:
- Secrets never live in config; only the NAME of the credential variable
- VAULT_<SECTION>_<KEY> environment variables override file values
- Unknown profile names fall back to the safe template-only profile
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import os

import yaml

from .logging import get_logger


class DeploymentProfile(str, Enum):
    """Which tool kinds a deployment may build."""
    TRUSTED = "trusted"              # Admin-trusted, single tenant: function bodies allowed
    TEMPLATE_ONLY = "template_only"  # Multi-tenant: declarative templates only


@dataclass
class VaultConfig:
    """Typed view over the configuration file."""
    credential_env_var: str = "VAULT_PRIVATE_KEY"
    credential_env_file: Optional[str] = None
    credential_sha256: Optional[str] = None
    network: str = "testnet"
    bucket_alias: str = "tools"
    storage_dir: str = ".vault/objects"
    profile: DeploymentProfile = DeploymentProfile.TEMPLATE_ONLY
    http_timeout_seconds: float = 30.0

    @property
    def allow_function_tools(self) -> bool:
        return self.profile == DeploymentProfile.TRUSTED


class ConfigManager:
    """
    Centralized configuration management.
    Loads configuration from YAML with environment variable overrides.
    """

    ENV_PREFIX = "VAULT_"

    def __init__(self, config_path: str = "config.yaml"):
        self._config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._logger = get_logger("infra.config")

        self._load_config()

    def _load_config(self) -> None:
        if self._config_path.exists():
            with open(self._config_path, "r") as f:
                self._config = yaml.safe_load(f) or {}
            self._logger.info(f"Loaded config from {self._config_path}")
        else:
            self._config = {}
            self._logger.warning(f"Config file not found: {self._config_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Supports dot notation: 'section.key'
        Environment variables override file config.
        """
        env_key = f"{self.ENV_PREFIX}{key.upper().replace('.', '_')}"
        env_value = os.getenv(env_key)
        if env_value is not None:
            return env_value

        value = self._config
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value (runtime only, not persisted)."""
        parts = key.split(".")
        config = self._config

        for part in parts[:-1]:
            config = config.setdefault(part, {})

        config[parts[-1]] = value

    def get_section(self, section: str) -> Dict[str, Any]:
        return self._config.get(section, {})

    def reload(self) -> None:
        self._load_config()

    def vault_config(self) -> VaultConfig:
        """Build the typed configuration."""
        defaults = VaultConfig()

        profile_name = str(self.get("tools.profile", defaults.profile.value)).lower()
        try:
            profile = DeploymentProfile(profile_name)
        except ValueError:
            self._logger.warning(f"Unknown profile '{profile_name}', using template_only")
            profile = DeploymentProfile.TEMPLATE_ONLY

        return VaultConfig(
            credential_env_var=self.get("credential.env_var", defaults.credential_env_var),
            credential_env_file=self.get("credential.env_file", defaults.credential_env_file),
            credential_sha256=self.get("credential.sha256", defaults.credential_sha256),
            network=self.get("storage.network", defaults.network),
            bucket_alias=self.get("storage.bucket_alias", defaults.bucket_alias),
            storage_dir=self.get("storage.dir", defaults.storage_dir),
            profile=profile,
            http_timeout_seconds=float(
                self.get("tools.http_timeout_seconds", defaults.http_timeout_seconds)
            ),
        )
