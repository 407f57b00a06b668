import os

import pytest

from aws_source.tracing import init_tracing, shutdown_tracing


@pytest.fixture(scope="session", autouse=True)
def tracing():
    """Send integration test traces to Honeycomb when a key is set."""
    key = os.environ.get("HONEYCOMB_API_KEY", "")
    if not key:
        yield
        return

    init_tracing(honeycomb_api_key=key, run_mode="test")
    yield
    shutdown_tracing()
