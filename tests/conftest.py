"""
Shared fixtures for the SEO dashboard test suite.

Every test gets its own SQLite file and a DataForSEO client in mock mode,
so nothing touches the network or the developer's database.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from seo_dashboard import agencies, clients
from seo_dashboard.app import app, get_api, get_crawler
from seo_dashboard.config import Config
from seo_dashboard.crawler import Crawler
from seo_dashboard.dataforseo import DataForSEOClient
from seo_dashboard.models import init_db


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    """Fresh schema in a temp file for each test."""
    path = tmp_path / "dashboard.db"
    monkeypatch.setattr(Config, "DB_PATH", str(path))
    init_db()
    return path


# ---------------------------------------------------------------------------
# Upstream
# ---------------------------------------------------------------------------

@pytest.fixture
def api():
    """Offline client: synthesized, deterministic, free responses."""
    return DataForSEOClient(mode="mock", cache_ttl=0)


@pytest.fixture
def fake_api():
    """Bare mock for tests that script exact upstream payloads."""
    mock = MagicMock()
    mock.reset_cost.return_value = 0.0
    return mock


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@pytest.fixture
def agency():
    return agencies.create_agency("Acme SEO", "ops@acme.test")


@pytest.fixture
def client_record(agency):
    return clients.create_client(agency["id"], "Widgets Co", "https://www.widgets.com/",
                                 industry="Manufacturing")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def crawler():
    mock = MagicMock(spec=Crawler)
    mock.fetch_page.return_value = None
    mock.crawl.return_value = []
    return mock


@pytest.fixture
def http(api, crawler):
    app.dependency_overrides[get_api] = lambda: api
    app.dependency_overrides[get_crawler] = lambda: crawler
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def headers(agency):
    return {"X-API-Key": agency["api_key"]}
