"""
Pytest configuration and fixtures for kkv-client.

Provides cross-platform event loop configuration, isolated metric registries
and test doubles.
"""

import asyncio
import sys
from unittest.mock import MagicMock

import pytest
from prometheus_client import CollectorRegistry

from kkv_client import UpdateEventBus, create_metrics

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def kkv_config():
    """Client configuration pointing at fake hosts."""
    return {
        "cache_host": "http://cache-kkv",
        "pixy_host": "http://pixy",
        "topic_name": "testtopic01",
    }


@pytest.fixture
def registry():
    """Fresh Prometheus registry so collectors never clash between tests."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return create_metrics(registry)


@pytest.fixture
def mock_metrics():
    """Metrics double whose ``labels(...)`` returns the collector itself."""

    def _collector(*args, **kwargs):
        c = MagicMock()
        c.labels.return_value = c
        return c

    return create_metrics(
        None, counter_cls=_collector, gauge_cls=_collector, histogram_cls=_collector
    )


@pytest.fixture
def bus():
    """Private update bus instead of the process-wide singleton."""
    return UpdateEventBus()
