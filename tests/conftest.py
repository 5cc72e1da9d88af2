import os
import tempfile

# Keep logs and the lifespan's default cache out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="blobcache-logs-"))
os.environ.setdefault("CACHE_DIR", tempfile.mkdtemp(prefix="blobcache-data-"))
os.environ.setdefault("REAPER_ENABLED", "false")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from blobcache.core.dependencies import get_cache
from blobcache.services.cache import CacheService
from blobcache.storage import KeyLocks, MetadataLedger, ObjectStore, Reaper
from main import app


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache-data"


@pytest.fixture
def store(cache_dir):
    return ObjectStore(cache_dir, chunk_size=1024)


@pytest.fixture
def ledger(cache_dir):
    return MetadataLedger(cache_dir)


@pytest.fixture
def locks():
    return KeyLocks()


@pytest.fixture
def service(store, ledger, locks):
    return CacheService(store, ledger, locks, upload_timeout=5)


@pytest.fixture
def make_reaper(store, ledger, locks):
    def factory(retention=timedelta(days=1), **kwargs):
        kwargs.setdefault("sweep_interval", timedelta(hours=1))
        return Reaper(store, ledger, locks, retention_window=retention, **kwargs)

    return factory


@pytest.fixture
def client(service):
    """TestClient whose cache endpoints use the per-test service."""
    app.dependency_overrides[get_cache] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
