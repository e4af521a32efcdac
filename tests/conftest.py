"""Shared fixtures: an in-memory MongoDB, a test client and seeded users."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from main import app
from tests.factories import bearer, insert_user


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def mongo():
    """Fresh in-memory database per test."""
    database = mongomock.MongoClient()["afrizone_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(mongo):
    app.dependency_overrides[get_db] = lambda: mongo
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def customer_id(mongo):
    return insert_user(mongo, "awa@afrizone.com")


@pytest.fixture
def other_customer_id(mongo):
    return insert_user(mongo, "kofi@afrizone.com", first_name="Kofi", last_name="Mensah")


@pytest.fixture
def admin_id(mongo):
    return insert_user(mongo, "admin@afrizone.com", role="admin", first_name="Admin", last_name="Root")


@pytest.fixture
def customer_headers(customer_id):
    return bearer(customer_id)


@pytest.fixture
def other_headers(other_customer_id):
    return bearer(other_customer_id)


@pytest.fixture
def admin_headers(admin_id):
    return bearer(admin_id)
