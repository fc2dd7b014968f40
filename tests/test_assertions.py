"""Assertion facade: pass/fail outcomes and report format."""
import pytest

from teamcity_harness.assertions import ComparisonFailure, ModelAssertions, assert_that_models
from teamcity_harness.comparison import ComparisonOptions
from teamcity_harness.rules import FieldRule, ModelRules


def test_contains_allows_extra_fields_in_container():
    ModelAssertions.assert_contains({"a": 1, "b": 2}, {"a": 1})


def test_contains_fails_when_container_lacks_field():
    with pytest.raises(ComparisonFailure) as excinfo:
        ModelAssertions.assert_contains({"a": 1}, {"a": 1, "b": 2})

    assert excinfo.value.result.missing_fields == ("b",)
    assert "Missing fields:\n  - b" in str(excinfo.value)


def test_contains_report_omits_extra_fields():
    with pytest.raises(ComparisonFailure) as excinfo:
        ModelAssertions.assert_contains({"a": 2, "extra": True}, {"a": 1})

    assert "Extra fields" not in str(excinfo.value)
    assert "a: Expected 1, got 2" in str(excinfo.value)


def test_match_is_assert_equal():
    ModelAssertions.match({"a": [1, 2]}, {"a": [1, 2]})
    with pytest.raises(ComparisonFailure, match="Extra fields:"):
        ModelAssertions.match({"a": 1}, {"a": 1, "b": 2})


def test_assert_equal_reports_every_section_at_once():
    with pytest.raises(ComparisonFailure) as excinfo:
        ModelAssertions.assert_equal({"a": 1, "b": 2}, {"a": 3, "c": 4}, "Payload mismatch")

    assert str(excinfo.value).splitlines() == [
        "Payload mismatch",
        "Differences:",
        "  - a: Expected 1, got 3",
        "Missing fields:",
        "  - b",
        "Extra fields:",
        "  - c",
    ]


def test_assert_equal_fails_on_extra_fields_only():
    with pytest.raises(ComparisonFailure) as excinfo:
        ModelAssertions.assert_equal({"a": 1}, {"a": 1, "b": 2})

    assert "Differences:" not in str(excinfo.value)
    assert "Extra fields:\n  - b" in str(excinfo.value)


def test_assert_matches_has_equal_semantics():
    ModelAssertions.assert_matches({"id": "x"}, {"id": "x"})
    with pytest.raises(ComparisonFailure):
        ModelAssertions.assert_matches({"id": "x", "href": "/x"}, {"id": "x"})


def test_options_pass_through():
    ModelAssertions.assert_equal(
        {"id": "x", "href": "/a"},
        {"id": "x", "href": "/b"},
        options=ComparisonOptions(ignore_fields={"href"}),
    )


def test_comparison_failure_is_an_assertion_error():
    assert issubclass(ComparisonFailure, AssertionError)


def test_fluent_match_and_contains():
    request = {"id": "P1", "name": "Project"}
    response = {"id": "P1", "name": "Project", "href": "/app/rest/projects/id:P1"}

    assert_that_models(request, response).contains()
    assert_that_models(request, response).match(ignore_fields=["href"])
    assert_that_models(request, response).matches_pattern({"ignoreFields": ["href"]})
    with pytest.raises(ComparisonFailure, match="Request and response data do not match"):
        assert_that_models(request, response).match()


def test_created_project_round_trip(seeded_generator):
    project = seeded_generator.generate_project_data()
    response = {
        "id": project.id,
        "name": project.name,
        "locator": project.locator,
        "copyAllAssociatedSettings": project.copy_all_associated_settings,
        "href": f"/app/rest/projects/id:{project.id}",
        "webUrl": f"http://localhost:8111/project.html?projectId={project.id}",
    }

    assert_that_models(project, response).contains(ignore_fields=["href", "webUrl"])

    response["name"] = "Renamed"
    with pytest.raises(ComparisonFailure) as excinfo:
        assert_that_models(project, response).contains(ignore_fields=["href", "webUrl"])
    assert "  - name: Expected" in str(excinfo.value)


def test_assert_rules_lists_failing_paths():
    rules = ModelRules.teamcity_defaults()
    rules.add_rule("parentProjectId", FieldRule("exact", value="_Root"))

    ModelAssertions.assert_rules({"id": "Valid_1", "name": "n", "parentProjectId": "_Root"}, rules)
    with pytest.raises(ComparisonFailure) as excinfo:
        ModelAssertions.assert_rules({"id": "1bad", "name": "n", "parentProjectId": "Other"}, rules)

    assert str(excinfo.value).splitlines()[-2:] == ["  - id", "  - parentProjectId"]
