"""
tests/conftest.py -- Shared test fixtures for VulnTrack tests.

This module provides:
  - store / links / scanner / dashboard: unit-level fixtures over a fresh
    sqlite:///:memory: InventoryStore per test
  - make_asset / make_vuln: factories that insert a record and return it
  - _make_test_stores(): isolated in-memory DBs for auth + inventory
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus an admin JWT for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment variables must be set before any core/auth/api import:
  DEBUG=true               -- get_settings() auto-generates SECRET_KEY
  RATE_LIMIT_ENABLED=false -- module-scoped clients would otherwise hit limits
  ALLOWED_HOSTS            -- TestClient sends Host: testserver
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost", "127.0.0.1"]')
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from inventory.dashboard import DashboardAggregator
from inventory.links import LinkManager
from inventory.models import Asset, Vulnerability
from inventory.scan import ScanMerger
from inventory.store import InventoryStore

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Unit fixtures -- fresh in-memory inventory per test
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[InventoryStore, None, None]:
    s = InventoryStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def links(store: InventoryStore) -> LinkManager:
    return LinkManager(store)


@pytest.fixture
def scanner(store: InventoryStore, links: LinkManager) -> ScanMerger:
    return ScanMerger(store, links, batch_size=5)


@pytest.fixture
def dashboard(store: InventoryStore) -> DashboardAggregator:
    return DashboardAggregator(store)


@pytest.fixture
def make_asset(store: InventoryStore):
    """Factory: insert an asset and return the stored record."""

    def _make(name: str = "web-01", type: str = "server", ip_address: str = "10.0.0.1", **extra) -> Asset:
        asset_id = store.create_asset(Asset(name=name, type=type, ip_address=ip_address, **extra))
        return store.get_asset(asset_id)

    return _make


@pytest.fixture
def make_vuln(store: InventoryStore):
    """Factory: insert a vulnerability and return the stored record.

    Names default to a unique value so tests never trip the name constraint
    by accident.
    """

    def _make(name: str = "", severity: str = "high", description: str = "Test weakness", **extra) -> Vulnerability:
        vuln_id = store.create_vulnerability(
            Vulnerability(
                name=name or f"VULN-{uuid.uuid4().hex[:8]}",
                description=description,
                severity=severity,
                **extra,
            )
        )
        return store.get_vulnerability(vuln_id)

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, InventoryStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    inventory_url = f"sqlite:///file:test_inventory_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), InventoryStore(inventory_url)


def _patch_lifespan(user_store: UserStore, store: InventoryStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and their collaborators into app.state so
    TestClient routes see isolated test DBs rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        links = LinkManager(store)
        app.state.user_store = user_store
        app.state.store = store
        app.state.links = links
        app.state.scanner = ScanMerger(store, links, batch_size=5)
        app.state.dashboard = DashboardAggregator(store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. Each
    test module gets its own pair of databases.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, store = _make_test_stores(suffix)

    uid = user_store.create_user(
        User(
            username=ADMIN_USERNAME,
            email="testadmin@example.com",
            hashed_password=hash_password(ADMIN_PASSWORD),
            role="admin",
        )
    )
    token = create_access_token(user_id=uid, username=ADMIN_USERNAME, role="admin", expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    user_store.close()
    store.close()


@pytest.fixture
def auth_headers(api_client: tuple[TestClient, str, int]) -> dict[str, str]:
    _client, token, _uid = api_client
    return {"Authorization": f"Bearer {token}"}
