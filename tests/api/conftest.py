"""
API Test Configuration

Provides a server runtime backed by the fake upstream and a TestClient for it.
The sync schedule is never started; tests trigger syncs explicitly.
"""

import pytest
from fastapi.testclient import TestClient

from dashsync.api.app import create_app
from dashsync.runtime import build_server_runtime
from dashsync.secure_config import SecureConfig


@pytest.fixture(autouse=True)
def default_sync_env(monkeypatch):
    """Keep local .env overrides out of the API tests."""
    for name in ("SYNC_PROJECTS", "SYNC_INTERVAL_MINUTES", "SYNC_WEEKDAYS_ONLY", "RUN_INITIAL_SYNC"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runtime(fake_upstream, cache):
    return build_server_runtime(config=SecureConfig(), upstream=fake_upstream, cache=cache)


@pytest.fixture
def app(runtime):
    return create_app(runtime, start_sync_job=False)


@pytest.fixture
def client(app):
    """Create FastAPI test client."""
    return TestClient(app)
