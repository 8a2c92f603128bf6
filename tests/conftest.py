# tests/conftest.py

"""
Shared fixtures for the Inventory Service tests.

The app's engine is pointed at an in-memory SQLite database before the package is
imported, so the tests need no running PostgreSQL. Each test starts from freshly
created tables, the default seed in both stores and an available backend.
"""

import logging
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_CONNECT_RETRIES"] = "1"
os.environ["DB_RETRY_DELAY_SECONDS"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from inventory_service.availability import AvailabilityProber
from inventory_service.bootstrap import seed_database
from inventory_service.db import Base, SessionLocal, engine
from inventory_service.main import app, get_store_router, memory_store, prober
from inventory_service.router import StoreRouter
from inventory_service.seed import DEFAULT_SEED, SeedData, SeedProduct
from inventory_service.stores import MemoryStore, RelationalStore

# Suppress noisy logs from SQLAlchemy during tests for cleaner output
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _reset_database(seed: SeedData) -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_database(session, seed)
    finally:
        session.close()


def many_products_seed(count: int) -> SeedData:
    """A seed with `count` products named 'Product 01', 'Product 02', ..."""
    return SeedData(
        branches=list(DEFAULT_SEED.branches),
        products=[
            SeedProduct(
                name=f"Product {i:02d}",
                price=float(10 + i),
                category="Bulk",
                stock={"PRINCIPAL": i},
            )
            for i in range(1, count + 1)
        ],
    )


# --- Pytest Fixtures ---
@pytest.fixture(autouse=True)
def reset_state():
    """
    Fresh tables, the default seed in both stores and a re-probed backend for every test.
    Dependency overrides are cleared afterwards.
    """
    _reset_database(DEFAULT_SEED)
    memory_store.reset(DEFAULT_SEED)
    prober.probe()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def load_seed():
    """Replace the data in both stores with another seed set."""

    def _load(seed: SeedData) -> None:
        _reset_database(seed)
        memory_store.reset(seed)

    return _load


@pytest.fixture
def load_bulk_products(load_seed):
    """Replace the data in both stores with `count` numbered products."""

    def _load(count: int) -> None:
        load_seed(many_products_seed(count))

    return _load


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(params=["relational", "memory"])
def store(request, db_session):
    """Each store test runs once per implementation."""
    if request.param == "relational":
        return RelationalStore(db_session, prober)
    return memory_store


@pytest.fixture
def broken_engine():
    # SQLite cannot create a database file inside a missing directory.
    broken = create_engine("sqlite:////nonexistent-dir/inventory/unreachable.db")
    yield broken
    broken.dispose()


@pytest.fixture
def offline_router(broken_engine):
    """
    A router whose backend probe fails, wired into the app so every request
    is served by a fresh in-memory store.
    """
    offline_prober = AvailabilityProber(broken_engine)
    offline_prober.probe()
    router = StoreRouter(offline_prober, MemoryStore(DEFAULT_SEED), fallback_enabled=True)
    app.dependency_overrides[get_store_router] = lambda: router
    return router


@pytest.fixture(scope="module")
def client():
    """
    Provides a TestClient for making HTTP requests to the FastAPI application.
    The TestClient manages the app's lifespan events (startup/shutdown).
    """
    with TestClient(app) as test_client:
        yield test_client
