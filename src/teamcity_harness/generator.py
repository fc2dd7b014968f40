"""Disposable fixture data for TeamCity entities.

Every call produces a fresh record whose identifying fields are built as
``<prefix>_<timestamp>_<suffix>``:

- ``timestamp`` is read from the injected clock (nanoseconds by default) and
  forced to increase strictly between two calls on the same generator;
- ``suffix`` is 32 random bits from the injected RNG, as 8 hex digits.

Overrides are merged shallowly on wire-named top-level keys, so a nested
override such as ``{"project": {"id": "X"}}`` replaces the generated nested
mapping instead of merging into it.

Usage:
    from teamcity_harness import generator

    project = generator.generate("project")
    build_type = generator.generate_build_type_data({"project": {"id": project.id}})
"""
from __future__ import annotations

import random
import re
import string
import time
import uuid
from dataclasses import dataclass, field, fields
from datetime import timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Mapping, Tuple, Type

from faker import Faker

from teamcity_harness.constants import ROOT_PROJECT

_ALPHANUMERIC = string.ascii_letters + string.digits
_IDENTIFIER_JUNK = re.compile(r"[^A-Za-z0-9_]")


class GenerationError(ValueError):
    """Raised when fixture data cannot be produced (unknown kind, bad record)."""
    pass


class FixtureKind(str, Enum):
    PROJECT = "project"
    BUILD_TYPE = "buildType"
    USER = "user"
    SERVER = "server"

    @classmethod
    def parse(cls, value: "FixtureKind | str") -> "FixtureKind":
        """Resolve a kind from an enum member or a case-insensitive name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for kind in cls:
                if kind.value.lower() == lowered:
                    return kind
        supported = ", ".join(kind.value for kind in cls)
        raise GenerationError(f"Unknown fixture kind: {value!r} (supported: {supported})")


def _wire(name: str) -> Any:
    return field(metadata={"wire": name})


@dataclass
class FixtureRecord:
    """Base for the per-kind fixture variants.

    Subclasses declare their fields in wire order and end with ``extra``,
    which holds override keys outside the kind's field set.
    """

    kind: ClassVar[FixtureKind]

    @classmethod
    def _wire_names(cls) -> Dict[str, str]:
        return {f.metadata.get("wire", f.name): f.name for f in fields(cls) if f.name != "extra"}

    def to_dict(self) -> Dict[str, Any]:
        """Return the request payload (wire names, shallow)."""
        data = {wire: getattr(self, attr) for wire, attr in self._wire_names().items()}
        data.update(self.extra)  # type: ignore[attr-defined]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FixtureRecord":
        wire_names = cls._wire_names()
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key in wire_names:
                kwargs[wire_names[key]] = value
            else:
                extra[key] = value

        missing = [wire for wire, attr in wire_names.items() if attr not in kwargs]
        if missing:
            raise GenerationError(f"{cls.kind.value} fixture is missing fields: {', '.join(missing)}")
        return cls(**kwargs, extra=extra)


@dataclass
class ProjectFixture(FixtureRecord):
    kind: ClassVar[FixtureKind] = FixtureKind.PROJECT

    locator: str
    name: str
    id: str
    copy_all_associated_settings: bool = _wire("copyAllAssociatedSettings")
    extra: Dict[str, Any] = field(default_factory=dict)

    def create_payload(self) -> Dict[str, Any]:
        """Body for POST /app/rest/projects (parent goes under parentProject)."""
        payload = {
            "parentProject": {"locator": self.locator},
            "name": self.name,
            "id": self.id,
            "copyAllAssociatedSettings": self.copy_all_associated_settings,
        }
        payload.update(self.extra)
        return payload


@dataclass
class BuildTypeFixture(FixtureRecord):
    kind: ClassVar[FixtureKind] = FixtureKind.BUILD_TYPE

    id: str
    name: str
    project: Dict[str, Any]
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UserFixture(FixtureRecord):
    kind: ClassVar[FixtureKind] = FixtureKind.USER

    username: str
    email: str
    password: str
    first_name: str = _wire("firstName")
    last_name: str = _wire("lastName")
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ServerFixture(FixtureRecord):
    kind: ClassVar[FixtureKind] = FixtureKind.SERVER

    version: str
    version_major: int = _wire("versionMajor")
    version_minor: int = _wire("versionMinor")
    build_number: str = _wire("buildNumber")
    build_date: str = _wire("buildDate")
    internal_id: str = _wire("internalId")
    role: str = _wire("role")
    web_url: str = _wire("webUrl")
    extra: Dict[str, Any] = field(default_factory=dict)


FIXTURE_TYPES: Dict[FixtureKind, Type[FixtureRecord]] = {
    FixtureKind.PROJECT: ProjectFixture,
    FixtureKind.BUILD_TYPE: BuildTypeFixture,
    FixtureKind.USER: UserFixture,
    FixtureKind.SERVER: ServerFixture,
}


@dataclass
class FieldDefinition:
    """Describes a single generated field for ad-hoc payloads."""

    name: str
    type: str = "string"
    min_length: int | None = None
    max_length: int | None = None
    min: int | None = None
    max: int | None = None
    pattern: str | None = None
    generator: Callable[["FieldDefinition"], Any] | None = None


def _bounds(low: int | None, high: int | None, default_low: int, default_high: int) -> Tuple[int, int]:
    """Fill a missing bound from its default without crossing the given one."""
    if low is None and high is None:
        return default_low, default_high
    if low is None:
        return min(default_low, high), high
    if high is None:
        return low, max(low, default_high)
    if low > high:
        raise GenerationError(f"Empty range: minimum {low} is greater than maximum {high}")
    return low, high


class DataGenerator:
    """Produces uniquely identified fixture records.

    Args:
        clock: Returns an integer timestamp (default: ``time.time_ns``)
        rng: Source of randomness (default: ``random.SystemRandom()``)
        locale: Faker locale for human-readable words and names
    """

    def __init__(
        self,
        clock: Callable[[], int] = time.time_ns,
        rng: random.Random | None = None,
        locale: str = "en_US",
    ) -> None:
        self._clock = clock
        self._rng = rng if rng is not None else random.SystemRandom()
        self._faker = Faker(locale)
        self._faker.seed_instance(self._rng.getrandbits(64))
        self._last_timestamp = 0
        self._builders: Dict[FixtureKind, Callable[[], Dict[str, Any]]] = {
            FixtureKind.PROJECT: self._project_defaults,
            FixtureKind.BUILD_TYPE: self._build_type_defaults,
            FixtureKind.USER: self._user_defaults,
            FixtureKind.SERVER: self._server_defaults,
        }

    # ---- identifiers ----------------------------------------------------------------
    def timestamp(self) -> int:
        now = int(self._clock())
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1
        self._last_timestamp = now
        return now

    def random_suffix(self) -> str:
        return f"{self._rng.getrandbits(32):08x}"

    def unique_id(self, prefix: str) -> str:
        return f"{prefix}_{self.timestamp()}_{self.random_suffix()}"

    def _word(self) -> str:
        return _IDENTIFIER_JUNK.sub("", self._faker.word()) or "fixture"

    # ---- records --------------------------------------------------------------------
    def generate(self, kind: FixtureKind | str, overrides: Mapping[str, Any] | None = None) -> FixtureRecord:
        """Generate a record of ``kind`` with ``overrides`` shallow-merged on top."""
        fixture_kind = FixtureKind.parse(kind)
        merged = {**self._builders[fixture_kind](), **dict(overrides or {})}
        return FIXTURE_TYPES[fixture_kind].from_dict(merged)

    def generate_project_data(self, overrides: Mapping[str, Any] | None = None) -> ProjectFixture:
        return self.generate(FixtureKind.PROJECT, overrides)  # type: ignore[return-value]

    def generate_build_type_data(self, overrides: Mapping[str, Any] | None = None) -> BuildTypeFixture:
        return self.generate(FixtureKind.BUILD_TYPE, overrides)  # type: ignore[return-value]

    def generate_user_data(self, overrides: Mapping[str, Any] | None = None) -> UserFixture:
        return self.generate(FixtureKind.USER, overrides)  # type: ignore[return-value]

    def generate_server_data(self, overrides: Mapping[str, Any] | None = None) -> ServerFixture:
        return self.generate(FixtureKind.SERVER, overrides)  # type: ignore[return-value]

    def _project_id(self) -> str:
        return self.unique_id(self._word())

    def _project_defaults(self) -> Dict[str, Any]:
        return {
            "locator": ROOT_PROJECT,
            "name": self.unique_id(f"Project_{self._word()}"),
            "id": self._project_id(),
            "copyAllAssociatedSettings": True,
        }

    def _build_type_defaults(self) -> Dict[str, Any]:
        # The referenced project is only synthesized, never created here.
        return {
            "id": self.unique_id(f"bt_{self._word()}"),
            "name": self.unique_id(f"Build_{self._word()}"),
            "project": {"id": self._project_id()},
        }

    def _user_defaults(self) -> Dict[str, Any]:
        handle = _IDENTIFIER_JUNK.sub("_", self._faker.user_name().lower()) or "user"
        username = self.unique_id(handle)
        return {
            "username": username,
            "email": f"{username}@example.test",
            "password": self._faker.password(length=12),
            "firstName": self._faker.first_name(),
            "lastName": self._faker.last_name(),
        }

    def _server_defaults(self) -> Dict[str, Any]:
        return {
            "version": "2023.11.1 (build 147412)",
            "versionMajor": 2023,
            "versionMinor": 11,
            "buildNumber": "147412",
            "buildDate": "20231214T000000+0000",
            "internalId": str(uuid.UUID(int=self._rng.getrandbits(128), version=4)),
            "role": "main_node",
            "webUrl": "http://localhost:8111",
        }

    # ---- single fields ----------------------------------------------------------------
    def generate_field(self, definition: FieldDefinition) -> Any:
        """Generate a value for one field definition."""
        if definition.generator is not None:
            return definition.generator(definition)

        field_type = definition.type
        if field_type == "string":
            if definition.pattern:
                return self._from_pattern(definition.pattern)
            length = self._rng.randint(*_bounds(definition.min_length, definition.max_length, 5, 20))
            return self._alphanumeric(length)
        if field_type == "number":
            return self._rng.randint(*_bounds(definition.min, definition.max, 0, 1000))
        if field_type == "boolean":
            return self._rng.random() < 0.5
        if field_type == "email":
            return self._faker.email()
        if field_type == "url":
            return self._faker.url()
        if field_type == "uuid":
            return str(uuid.UUID(int=self._rng.getrandbits(128), version=4))
        if field_type == "date":
            return self._faker.date_time_this_month(tzinfo=timezone.utc).isoformat()
        if field_type == "regex":
            return self._from_pattern(definition.pattern or ".*")
        return self._alphanumeric(8)

    def _alphanumeric(self, length: int) -> str:
        return "".join(self._rng.choice(_ALPHANUMERIC) for _ in range(length))

    def _from_pattern(self, pattern: str) -> str:
        # Only the patterns used by the TeamCity rule set are understood.
        if pattern == r"^[a-zA-Z][a-zA-Z0-9_]*$":
            return self._rng.choice(string.ascii_letters) + self._alphanumeric(5)
        if pattern == r"^/app/rest/.*$":
            return f"/app/rest/{self._word()}"
        if pattern == r"^http://.*$":
            return f"http://{self._faker.domain_name()}/"
        return self._alphanumeric(10)


_default_generator: DataGenerator | None = None


def default_generator() -> DataGenerator:
    """Process-wide generator used by the module-level helpers."""
    global _default_generator
    if _default_generator is None:
        _default_generator = DataGenerator()
    return _default_generator


def generate(kind: FixtureKind | str, overrides: Mapping[str, Any] | None = None) -> FixtureRecord:
    return default_generator().generate(kind, overrides)


def generate_project_data(overrides: Mapping[str, Any] | None = None) -> ProjectFixture:
    return default_generator().generate_project_data(overrides)


def generate_build_type_data(overrides: Mapping[str, Any] | None = None) -> BuildTypeFixture:
    return default_generator().generate_build_type_data(overrides)


def generate_user_data(overrides: Mapping[str, Any] | None = None) -> UserFixture:
    return default_generator().generate_user_data(overrides)


def generate_server_data(overrides: Mapping[str, Any] | None = None) -> ServerFixture:
    return default_generator().generate_server_data(overrides)


def unique_id(prefix: str) -> str:
    return default_generator().unique_id(prefix)
