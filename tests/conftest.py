import random
import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from teamcity_harness.config import AuthProfile, HarnessConfig  # noqa: E402
from teamcity_harness.entity_registry import EntityRegistry  # noqa: E402
from teamcity_harness.generator import DataGenerator  # noqa: E402


class FixedClock:
    """Clock returning the same reading until advanced."""

    def __init__(self, now=1_700_000_000_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def fixed_clock():
    return FixedClock()


@pytest.fixture
def seeded_generator(fixed_clock):
    return DataGenerator(clock=fixed_clock, rng=random.Random(1234))


@pytest.fixture
def registry():
    return EntityRegistry()


@pytest.fixture
def harness_config():
    return HarnessConfig(
        base_url="http://teamcity.test:8111",
        timeout=2.0,
        retries=3,
        retry_backoff=0.0,
        profiles={"admin": AuthProfile(name="admin", username="admin", password="secret")},
    )
