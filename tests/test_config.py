"""
Configuration Tests
-------------------
YAML loading, environment overrides and the typed view.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from infra.config import ConfigManager, DeploymentProfile, VaultConfig

CONFIG = """
credential:
  env_var: MY_KEY
storage:
  network: mainnet
  bucket_alias: registry
tools:
  profile: trusted
  http_timeout_seconds: 5
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)
    return path


class TestConfigManager:
    """Dot-notation access with VAULT_ overrides."""

    def test_get(self, config_file):
        config = ConfigManager(str(config_file))
        assert config.get("storage.network") == "mainnet"
        assert config.get("storage.missing", "fallback") == "fallback"

    def test_env_override(self, config_file, monkeypatch):
        monkeypatch.setenv("VAULT_STORAGE_NETWORK", "devnet")
        assert ConfigManager(str(config_file)).get("storage.network") == "devnet"

    def test_set_runtime_only(self, config_file):
        config = ConfigManager(str(config_file))
        config.set("storage.network", "localnet")
        assert config.get("storage.network") == "localnet"

        config.reload()
        assert config.get("storage.network") == "mainnet"

    def test_missing_file(self, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert config.get_section("storage") == {}


class TestVaultConfig:
    """Typed view over the file."""

    def test_values(self, config_file):
        vault = ConfigManager(str(config_file)).vault_config()

        assert vault.credential_env_var == "MY_KEY"
        assert vault.network == "mainnet"
        assert vault.bucket_alias == "registry"
        assert vault.profile == DeploymentProfile.TRUSTED
        assert vault.allow_function_tools
        assert vault.http_timeout_seconds == 5.0

    def test_defaults(self, tmp_path):
        vault = ConfigManager(str(tmp_path / "absent.yaml")).vault_config()
        assert vault == VaultConfig()
        assert not vault.allow_function_tools

    def test_unknown_profile_is_template_only(self, config_file, monkeypatch):
        monkeypatch.setenv("VAULT_TOOLS_PROFILE", "everything")
        vault = ConfigManager(str(config_file)).vault_config()
        assert vault.profile == DeploymentProfile.TEMPLATE_ONLY
