from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from keyadmin.config import settings
from keyadmin.dependencies import get_store
from keyadmin.keyspace import Keyspace
from keyadmin.main import app
from keyadmin.middleware.rate_limit import limiter
from keyadmin.services.kv_store import DualBackendStore
from tests.test_utils import InMemoryKeyValueClient

ADMIN_API_KEY = "test-admin-key"


@pytest.fixture
def data_dir(tmp_path):
    """Directory for the JSON mirror files of one test."""
    return tmp_path / "data"


@pytest.fixture
def kv():
    return InMemoryKeyValueClient()


@pytest.fixture
def keyspace():
    return Keyspace("exhub")


@pytest.fixture
def store(kv, data_dir, keyspace):
    """Store with a (fake) remote backend and a file mirror."""
    return DualBackendStore(kv, data_dir, keyspace)


@pytest.fixture
def file_store(data_dir, keyspace):
    """Store with no remote backend configured."""
    return DualBackendStore(None, data_dir, keyspace)


@pytest.fixture
def admin_headers():
    return {"X-API-Key": ADMIN_API_KEY}


@pytest.fixture
def client(store):
    """Test client wired to the test store, with rate limiting disabled."""
    app.dependency_overrides[get_store] = lambda: store
    limiter.enabled = False

    with patch.object(settings, "admin_api_key", ADMIN_API_KEY):
        with TestClient(app) as test_client:
            yield test_client

    app.dependency_overrides.clear()
    limiter.enabled = True
