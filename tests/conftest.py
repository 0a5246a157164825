"""
Pytest configuration for SmartLocations tests.

Environment is pinned before any test module imports the app, because
configuration is read once at import time.
"""
import os

import pytest

os.environ["ENVIRONMENT"] = "testing"
os.environ["AUTH_ENABLED"] = "false"
os.environ["REDIS_URL"] = ""
os.environ.pop("GROQ_API_KEY", None)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty in-memory counters."""
    from smart_locations.src import metrics
    metrics.reset()
    yield
    metrics.reset()
