"""
Shared test fixtures and configuration for pytest
"""
import os
import tempfile

# Keep config, logs and the account cache out of the real home directory.
# Must run before anything imports vemail.utils.paths.
os.environ.setdefault("VEMAIL_HOME", tempfile.mkdtemp(prefix="vemail-tests-"))
os.environ.pop("VEMAIL_USER", None)

import pytest

from vemail.core.accounts.cache import AccountCache, MemoryStore
from vemail.core.accounts.manager import AccountManager
from vemail.core.http import ServiceTransport, create_http_client
from vemail.utils.config import ConfigManager

from .test_helpers import ACCOUNT_SERVICE_URL, STORE_URL, ServiceStub


@pytest.fixture
def store():
    """In-memory key-value backend"""
    return MemoryStore()


@pytest.fixture
def cache(store):
    """Account cache over the in-memory backend"""
    return AccountCache(store)


@pytest.fixture
def id_factory():
    """Deterministic account ids: acc-1, acc-2, ..."""
    counter = iter(range(1, 10_000))
    return lambda: f"acc-{next(counter)}"


@pytest.fixture
def manager(cache, id_factory):
    """Account manager with no cloud sync"""
    return AccountManager(cache, id_factory=id_factory)


@pytest.fixture
def service():
    """Recorded stand-in for the remote services"""
    return ServiceStub()


@pytest.fixture
async def http_client(service):
    """AsyncClient wired to the service stub"""
    client = create_http_client(transport=service.transport)
    yield client
    await client.aclose()


@pytest.fixture
def account_transport(http_client):
    return ServiceTransport(http_client, ACCOUNT_SERVICE_URL)


@pytest.fixture
def store_transport(http_client):
    return ServiceTransport(http_client, STORE_URL)


@pytest.fixture
def config(tmp_path):
    """Fresh ConfigManager backed by a temp file"""
    ConfigManager.reset_instance()
    manager = ConfigManager(tmp_path / "config.json")
    yield manager
    ConfigManager.reset_instance()
