"""Fixture generation: uniqueness, overrides and determinism."""
import random
import re

import pytest

from teamcity_harness import generator
from teamcity_harness.constants import ROOT_PROJECT
from teamcity_harness.generator import (
    BuildTypeFixture,
    DataGenerator,
    FieldDefinition,
    FixtureKind,
    GenerationError,
    ProjectFixture,
    ServerFixture,
    UserFixture,
)

ID_FORMAT = re.compile(r"^[A-Za-z][A-Za-z0-9_]*_\d+_[0-9a-f]{8}$")


@pytest.mark.parametrize(
    "kind, field",
    [
        ("project", "id"),
        ("project", "name"),
        ("buildType", "id"),
        ("user", "username"),
    ],
)
def test_identifying_fields_are_unique(kind, field):
    gen = DataGenerator()
    values = {gen.generate(kind).to_dict()[field] for _ in range(10_000)}
    assert len(values) == 10_000


def test_unique_with_frozen_clock(fixed_clock):
    gen = DataGenerator(clock=fixed_clock)
    ids = [gen.unique_id("p") for _ in range(100)]
    assert len(set(ids)) == 100
    timestamps = [int(value.split("_")[1]) for value in ids]
    assert timestamps == sorted(timestamps)
    assert timestamps[0] == fixed_clock.now


def test_project_defaults(seeded_generator):
    project = seeded_generator.generate_project_data()

    assert isinstance(project, ProjectFixture)
    assert project.locator == ROOT_PROJECT
    assert project.copy_all_associated_settings is True
    assert ID_FORMAT.match(project.id)
    assert project.name.startswith("Project_")
    assert list(project.to_dict()) == ["locator", "name", "id", "copyAllAssociatedSettings"]


def test_project_create_payload_nests_parent(seeded_generator):
    project = seeded_generator.generate_project_data({"locator": "Parent"})

    payload = project.create_payload()

    assert payload["parentProject"] == {"locator": "Parent"}
    assert payload["id"] == project.id
    assert "locator" not in payload


def test_build_type_synthesizes_project_reference(seeded_generator):
    build_type = seeded_generator.generate_build_type_data()

    assert isinstance(build_type, BuildTypeFixture)
    assert build_type.id.startswith("bt_")
    assert ID_FORMAT.match(build_type.project["id"])


def test_user_fields(seeded_generator):
    user = seeded_generator.generate_user_data()

    assert isinstance(user, UserFixture)
    assert user.email == f"{user.username}@example.test"
    assert len(user.password) == 12
    assert user.first_name and user.last_name
    assert set(user.to_dict()) == {"username", "email", "password", "firstName", "lastName"}


def test_server_stub(seeded_generator):
    server = seeded_generator.generate_server_data()

    assert isinstance(server, ServerFixture)
    assert server.version_major == 2023
    assert re.match(r"^[0-9a-f-]{36}$", server.internal_id)


def test_overrides_are_shallow(seeded_generator):
    build_type = seeded_generator.generate_build_type_data({"project": {"name": "Only name"}})

    # The nested mapping is replaced, not merged: the generated id is gone.
    assert build_type.project == {"name": "Only name"}


def test_overrides_outside_field_set_are_kept(seeded_generator):
    project = seeded_generator.generate_project_data({"description": "extra field"})

    assert project.extra == {"description": "extra field"}
    assert project.to_dict()["description"] == "extra field"
    assert project.create_payload()["description"] == "extra field"


@pytest.mark.parametrize("kind", ["buildtype", "BUILDTYPE", FixtureKind.BUILD_TYPE])
def test_kind_is_case_insensitive(seeded_generator, kind):
    assert isinstance(seeded_generator.generate(kind), BuildTypeFixture)


def test_unknown_kind_fails_fast(seeded_generator):
    with pytest.raises(GenerationError, match="vcsRoot"):
        seeded_generator.generate("vcsRoot")


def test_deterministic_under_fixed_clock_and_rng(fixed_clock):
    first = DataGenerator(clock=fixed_clock, rng=random.Random(99))
    second = DataGenerator(clock=fixed_clock, rng=random.Random(99))

    for kind in FixtureKind:
        assert first.generate(kind).to_dict() == second.generate(kind).to_dict()


def test_from_dict_requires_all_fields():
    with pytest.raises(GenerationError, match="copyAllAssociatedSettings"):
        ProjectFixture.from_dict({"locator": ROOT_PROJECT, "name": "n", "id": "i"})


def test_module_helpers_use_default_generator():
    assert isinstance(generator.generate("user"), UserFixture)
    assert isinstance(generator.generate_project_data(), ProjectFixture)
    assert generator.unique_id("x").startswith("x_")


class TestGenerateField:
    def test_string_bounds(self, seeded_generator):
        for _ in range(50):
            value = seeded_generator.generate_field(FieldDefinition("s", min_length=3, max_length=6))
            assert 3 <= len(value) <= 6

    def test_number_bounds(self, seeded_generator):
        for _ in range(50):
            value = seeded_generator.generate_field(FieldDefinition("n", type="number", min=5, max=7))
            assert 5 <= value <= 7

    @pytest.mark.parametrize(
        "definition, low, high",
        [
            (FieldDefinition("s", min_length=30), 30, 30),
            (FieldDefinition("s", max_length=3), 3, 3),
        ],
    )
    def test_single_string_bound(self, seeded_generator, definition, low, high):
        for _ in range(20):
            assert low <= len(seeded_generator.generate_field(definition)) <= high

    @pytest.mark.parametrize(
        "definition, low, high",
        [
            (FieldDefinition("n", type="number", min=5000), 5000, 5000),
            (FieldDefinition("n", type="number", max=-10), -10, -10),
            (FieldDefinition("n", type="number", min=10), 10, 1000),
        ],
    )
    def test_single_number_bound(self, seeded_generator, definition, low, high):
        for _ in range(20):
            assert low <= seeded_generator.generate_field(definition) <= high

    def test_crossed_bounds_are_rejected(self, seeded_generator):
        with pytest.raises(GenerationError, match="Empty range"):
            seeded_generator.generate_field(FieldDefinition("n", type="number", min=9, max=1))

    def test_boolean(self, seeded_generator):
        assert isinstance(seeded_generator.generate_field(FieldDefinition("b", type="boolean")), bool)

    def test_identifier_pattern(self, seeded_generator):
        definition = FieldDefinition("id", type="regex", pattern=r"^[a-zA-Z][a-zA-Z0-9_]*$")
        assert re.match(definition.pattern, seeded_generator.generate_field(definition))

    def test_email_and_url(self, seeded_generator):
        assert "@" in seeded_generator.generate_field(FieldDefinition("e", type="email"))
        assert seeded_generator.generate_field(FieldDefinition("u", type="url")).startswith("http")

    def test_custom_generator_wins(self, seeded_generator):
        definition = FieldDefinition("c", type="number", generator=lambda d: f"custom-{d.name}")
        assert seeded_generator.generate_field(definition) == "custom-c"
