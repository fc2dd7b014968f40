import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT, ROOT / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from api_tests.conftest_mock_api import mock_teamcity_server, reset_mock_teamcity  # noqa: E402,F401
from teamcity_harness.config import HarnessConfig, configure_logging, load_config  # noqa: E402
from teamcity_harness.entity_registry import EntityRegistry  # noqa: E402
from teamcity_harness.generator import DataGenerator  # noqa: E402
from teamcity_harness.http_client import HttpClient  # noqa: E402

MARKERS = {
    "positive": "happy-path API behaviour",
    "negative": "requests the server must reject",
    "crud": "create/read/delete lifecycle checks",
    "roles": "role-based access checks",
    "cleanup": "entity registry cleanup behaviour",
}


def pytest_configure(config):
    for name, description in MARKERS.items():
        config.addinivalue_line("markers", f"{name}: {description}")


def _use_live_server() -> bool:
    """HARNESS_LIVE=true runs the suites against the configured TeamCity server."""
    return os.getenv("HARNESS_LIVE", "").strip().lower() in {"1", "true", "yes"}


@pytest.fixture(scope="session")
def harness_config(request) -> HarnessConfig:
    if _use_live_server():
        config = load_config()
        configure_logging(config)
        return config

    server = request.getfixturevalue("mock_teamcity_server")
    return HarnessConfig(
        base_url=server.base_url,
        timeout=5.0,
        retries=1,
        retry_backoff=0.0,
        log_level="DEBUG",
        profiles=server.profiles,
        default_profile="admin",
    )


@pytest.fixture(autouse=True)
def clean_server_state(request):
    """Fresh mock state per test (the live server keeps its state)."""
    if not _use_live_server():
        request.getfixturevalue("reset_mock_teamcity")
    yield


@pytest.fixture(scope="session")
def process_registry() -> EntityRegistry:
    """One registry per worker process."""
    return EntityRegistry()


@pytest.fixture()
def data_generator() -> DataGenerator:
    return DataGenerator()


@pytest_asyncio.fixture()
async def http_client(harness_config, process_registry):
    """Admin client; closed only after the registry has been drained."""
    async with HttpClient(harness_config, process_registry) as client:
        yield client


@pytest_asyncio.fixture()
async def entity_registry(process_registry, http_client):
    """Clear before the test, drain after it whatever the outcome."""
    process_registry.clear()
    yield process_registry
    await process_registry.cleanup_all()


@pytest_asyncio.fixture()
async def api(http_client, entity_registry):
    """The admin client with registry lifecycle hooks active."""
    return http_client

