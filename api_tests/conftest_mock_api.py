"""Pytest fixtures serving the mock TeamCity REST API from a background thread."""
import threading
import time

import httpx
import pytest
from werkzeug.serving import make_server

from api_tests.mock_teamcity_api import (
    MOCK_ADMIN_PASSWORD,
    MOCK_ADMIN_USERNAME,
    MOCK_SUPERUSER_TOKEN,
    create_mock_api_app,
    reset_mock_state,
)
from teamcity_harness.config import AuthProfile
from teamcity_harness.constants import SERVER_PATH


class MockTeamCityServer:
    """werkzeug server bound to a free port; use as a context manager."""

    startup_timeout = 5.0

    def __init__(self, host="127.0.0.1"):
        self.host = host
        self._server = make_server(host, 0, create_mock_api_app(), threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="mock-teamcity",
            daemon=True,
        )

    def __enter__(self):
        self._thread.start()
        self._wait_until_ready()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._server.shutdown()
        self._thread.join(timeout=self.startup_timeout)

    def _wait_until_ready(self):
        deadline = time.monotonic() + self.startup_timeout
        probe = f"{self.base_url}{SERVER_PATH}"
        while time.monotonic() < deadline:
            try:
                httpx.get(probe, timeout=0.5)
                return
            except httpx.TransportError:
                time.sleep(0.1)
        raise RuntimeError(f"Mock TeamCity server did not answer on {self.base_url}")

    @property
    def port(self):
        return self._server.server_port

    @property
    def base_url(self):
        return f"http://{self.host}:{self.port}"

    @property
    def profiles(self):
        """Auth profiles accepted by the mock (admin and superuser token)."""
        return {
            "admin": AuthProfile(name="admin", username=MOCK_ADMIN_USERNAME, password=MOCK_ADMIN_PASSWORD),
            "superuser": AuthProfile(name="superuser", username="", password=MOCK_SUPERUSER_TOKEN),
        }


@pytest.fixture(scope="session")
def mock_teamcity_server():
    """One mock server per session; ``reset_mock_teamcity`` wipes its state per test."""
    reset_mock_state()
    with MockTeamCityServer() as server:
        yield server
    reset_mock_state()


@pytest.fixture()
def reset_mock_teamcity():
    reset_mock_state()
    yield
