"""
Global pytest configuration and fixtures for shopdata tests.

This module provides:
- FastAPI test client fixture
- In-memory execution and schema stores
- A controllable clock
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from fakes import FakeExecutionStore, FakeSchemaStore


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def client() -> TestClient:
    """
    Synchronous FastAPI test client for unit tests.

    The lifespan is not entered, so no database pool is created; routes are
    tested with their services patched.
    """
    from shopdata.main import app

    return TestClient(app)


# =============================================================================
# Store Fixtures
# =============================================================================


class MutableClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2025, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def execution_store() -> FakeExecutionStore:
    return FakeExecutionStore()


@pytest.fixture
def schema_store(clock: MutableClock) -> FakeSchemaStore:
    return FakeSchemaStore(clock)


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "scenario: end-to-end dataset scenarios run against in-memory stores",
    )
