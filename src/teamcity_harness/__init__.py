"""Test harness for the TeamCity REST API.

Fixture generation, structural comparison, entity cleanup and an async HTTP
client that registers every entity it creates.
"""

from teamcity_harness.assertions import (
    ComparisonFailure,
    ModelAssertions,
    ModelComparison,
    assert_that_models,
)
from teamcity_harness.comparison import (
    UNDEFINED,
    ComparisonOptions,
    ComparisonResult,
    Difference,
    compare,
)
from teamcity_harness.config import AuthProfile, HarnessConfig, configure_logging, load_config
from teamcity_harness.entity_registry import (
    CleanupFailure,
    EntityKind,
    EntityRegistry,
    RegisteredEntity,
    RegistryStats,
)
from teamcity_harness.generator import (
    DataGenerator,
    FixtureKind,
    FixtureRecord,
    GenerationError,
)
from teamcity_harness.http_client import ApiResponse, HttpClient, RequestFailure

__version__ = "0.1.0"

__all__ = [
    "ApiResponse",
    "AuthProfile",
    "CleanupFailure",
    "ComparisonFailure",
    "ComparisonOptions",
    "ComparisonResult",
    "DataGenerator",
    "Difference",
    "EntityKind",
    "EntityRegistry",
    "FixtureKind",
    "FixtureRecord",
    "GenerationError",
    "HarnessConfig",
    "HttpClient",
    "ModelAssertions",
    "ModelComparison",
    "RegisteredEntity",
    "RegistryStats",
    "RequestFailure",
    "UNDEFINED",
    "assert_that_models",
    "compare",
    "configure_logging",
    "load_config",
]
