"""
Shared fixtures: an in-memory MongoDB (mongomock) and a TestClient wired to it.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient

import catalog
from database import ensure_indexes, get_db
from main import app


@pytest.fixture
def db():
    database = mongomock.MongoClient()["business_dashboard_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_customer(db):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        data = {"name": f"Client {counter['n']}", "email": f"client{counter['n']}@example.com"}
        data.update(fields)
        return catalog.create_customer(db, data)

    return _make


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        data = {"sku": f"PROD-{counter['n']:03d}", "name": f"Product {counter['n']}", "price": 10, "stock": 100}
        data.update(fields)
        return catalog.create_product(db, data)

    return _make


@pytest.fixture
def stock_of(db):
    def _stock(product):
        return catalog.get_product(db, product["id"])["stock"]

    return _stock
