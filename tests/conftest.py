"""
Shared fixtures: a fake transport that routes request paths to canned payloads.
"""
import logging
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ado_inventory.client import AdoRequestError
from ado_inventory.config import CollectorConfig
from ado_inventory.utils import RedactingFilter


class FakeClient:
    """
    Stand-in for AdoClient.

    routes maps a path suffix (query string excluded) to a payload, an
    exception instance to raise, or a callable taking the full URL. Paths
    with no route answer 404.
    """

    def __init__(self, routes=None, config=None):
        self.routes = dict(routes or {})
        self.config = config or CollectorConfig()
        self.calls = []

    def _respond(self, method, url, payload):
        self.calls.append((method, url, payload))
        path = url.split('?', 1)[0]
        for suffix, response in self.routes.items():
            if path.endswith(suffix):
                if callable(response):
                    response = response(url)
                if isinstance(response, Exception):
                    raise response
                return response
        raise AdoRequestError(url, "Not Found", status_code=404)

    def get_json(self, url):
        return self._respond("GET", url, None)

    def post_json(self, url, payload):
        return self._respond("POST", url, payload)

    def urls(self, fragment=""):
        return [url for _, url, _ in self.calls if fragment in url]


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo setup_logging() calls made by a test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if any(isinstance(f, RedactingFilter) for f in handler.filters):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def config():
    """Default collector configuration."""
    return CollectorConfig()


@pytest.fixture
def fake_client():
    """Factory for FakeClient instances."""
    def _make(routes=None, config=None):
        return FakeClient(routes, config)
    return _make
