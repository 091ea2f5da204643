"""
Vault Test Configuration
------------------------
Shared fixtures and configuration for all tests.

Every credential here is a throwaway 64-hex test value.
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infra.logging import reset_logging
from security.secret_store import SecretStore
from storage import InMemoryObjectStore, RequestSigner, StorageClient
from tools import TemplateExecutor, ToolRegistry, TrustedToolRegistry

TEST_KEY = "0x" + "ab12" * 16
TEST_ENV_VAR = "VAULT_TEST_PRIVATE_KEY"


# =============================================================================
# Test Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_logging():
    """Drop any handlers a test installed via configure_logging."""
    yield
    reset_logging()


@pytest.fixture
def environ():
    """A private environment mapping holding the test credential."""
    return {TEST_ENV_VAR: TEST_KEY}


@pytest.fixture
def secret_store(environ, tmp_path):
    """SecretStore over the private environment, with no env file on disk."""
    return SecretStore(
        env_var=TEST_ENV_VAR,
        env_file=str(tmp_path / "missing.env"),
        environ=environ,
    )


# =============================================================================
# Storage and registries
# =============================================================================

@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def client(object_store):
    """A client whose bucket is not resolved yet."""
    return StorageClient(object_store, RequestSigner(TEST_KEY))


@pytest_asyncio.fixture
async def ready_client(client):
    """A client with its bucket resolved."""
    await client.get_or_create_bucket("tools")
    yield client
    client.close()


@pytest.fixture
def templates():
    return TemplateExecutor()


@pytest.fixture
def registry(ready_client, templates):
    """Template-only registry."""
    return ToolRegistry(ready_client, templates)


@pytest.fixture
def trusted_registry(ready_client, templates):
    """Registry that also builds function tools, sharing the same bucket."""
    return TrustedToolRegistry(ready_client, templates)
