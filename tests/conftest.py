"""Pytest configuration and shared fixtures."""

import pytest
from support import VirtualClock

from shiptrack.config.settings import reset_settings
from shiptrack.tracking.errors import CreateRejected, TransportError
from shiptrack.utils.logging import reset_logging


@pytest.fixture(autouse=True)
def _reset_globals():
    """Keep logging and settings singletons isolated between tests."""
    reset_logging()
    reset_settings()
    yield
    reset_logging()
    reset_settings()


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def rejected() -> CreateRejected:
    return CreateRejected("Shipping line does not support this reference")


@pytest.fixture
def transport_error() -> TransportError:
    return TransportError("connection reset")
