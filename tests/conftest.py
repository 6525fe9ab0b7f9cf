"""Shared fixtures: an in-memory store seeded with the packaged sample bundle."""

import pytest
import pytest_asyncio

from tmbridge.config import TerminologySettings
from tmbridge.store.loader import SAMPLE_BUNDLE_PATH, load_bundle_file
from tmbridge.store.memory import InMemoryTerminologyStore
from tmbridge.terminology.service import TerminologyService


@pytest_asyncio.fixture
async def store():
    """Fresh seeded store per test."""
    store = InMemoryTerminologyStore()
    await load_bundle_file(store, SAMPLE_BUNDLE_PATH)
    return store


@pytest.fixture
def settings():
    return TerminologySettings(store_backend="memory", query_timeout_seconds=2.0)


@pytest.fixture
def service(store, settings):
    return TerminologyService(store, settings)
