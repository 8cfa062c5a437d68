"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ratewarden import so the global
settings pick up the in-memory store and test API keys instead of a local
.env file.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123=pro,test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from fakes import FakeClock, InspectableCounterStore, UnreachableStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InspectableCounterStore:
    return InspectableCounterStore()


@pytest.fixture
def unreachable_store() -> UnreachableStore:
    return UnreachableStore()


@pytest.fixture
def valid_api_key_headers() -> dict[str, str]:
    """Headers carrying a configured service key (tier: pro)."""
    return {"X-API-Key": "test-api-key-123"}
