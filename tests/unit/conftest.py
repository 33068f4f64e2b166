"""Shared fixtures for unit tests."""

import logging

import pytest

from httphost.domain.correlation_id import clear_correlation_id


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""
    logger = logging.getLogger("httphost")
    old_propagate = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = old_propagate


@pytest.fixture(autouse=True)
def reset_correlation_id():
    """Keep correlation IDs from leaking between tests on the same thread."""
    clear_correlation_id()
    yield
    clear_correlation_id()
