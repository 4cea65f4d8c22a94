"""
Pytest configuration for the settlement pipeline tests.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import (
    JPEG_BYTES,
    FakeClassifier,
    FakeImageStorage,
    FakeJobQueue,
    InMemoryPickupRepository,
    InMemoryPointsLedger,
    make_verdict,
)
from services.settlement_service import SettlementService

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )
    config.addinivalue_line(
        "markers", "postgres: needs a live PostgreSQL at TEST_DATABASE_URL."
    )


@pytest.fixture
def jpeg_bytes():
    return JPEG_BYTES


@pytest.fixture
def ledger():
    return InMemoryPointsLedger()


@pytest.fixture
def pickups(ledger):
    return InMemoryPickupRepository(ledger=ledger)


@pytest.fixture
def storage():
    return FakeImageStorage()


@pytest.fixture
def job_queue():
    return FakeJobQueue()


@pytest.fixture
def classifier():
    return FakeClassifier(make_verdict(True))


@pytest.fixture
def service(pickups, ledger, classifier, storage, job_queue):
    return SettlementService(
        pickups=pickups,
        ledger=ledger,
        classifier=classifier,
        image_storage=storage,
        job_queue=job_queue,
    )
