"""Structural comparison rules."""
import copy

import pytest
from hypothesis import given, settings, strategies as st

from teamcity_harness.comparison import UNDEFINED, ComparisonOptions, Difference, compare, type_name

json_leaves = st.none() | st.booleans() | st.integers() | st.floats() | st.text(max_size=10)
json_trees = st.recursive(
    json_leaves,
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=5), children, max_size=4),
    max_leaves=25,
)


@settings(max_examples=200)
@given(json_trees)
def test_compare_is_reflexive(tree):
    assert compare(tree, tree).success


@settings(max_examples=100)
@given(json_trees)
def test_compare_with_deep_copy_is_reflexive(tree):
    assert compare(tree, copy.deepcopy(tree), {}).success


def test_nan_leaves_compare_equal():
    assert compare({"ratio": float("nan")}, {"ratio": float("nan")}).success

    result = compare({"ratio": float("nan")}, {"ratio": 0.5})
    assert [d.path for d in result.differences] == ["ratio"]


def test_equal_nested_objects():
    result = compare({"a": 1, "b": {"c": 2}}, {"a": 1, "b": {"c": 2}}, {})
    assert result.success
    assert result.differences == () and result.missing_fields == () and result.extra_fields == ()


def test_type_mismatch_short_circuits():
    result = compare({"a": {"b": 1}}, {"a": "x"}, {})

    assert result.differences == (Difference("a", "Expected type object, got string"),)
    assert result.missing_fields == ()


def test_missing_field():
    result = compare({"a": 1, "b": 2}, {"a": 1}, {})

    assert result.missing_fields == ("b",)
    assert result.differences == ()
    assert not result.success


def test_extra_field():
    result = compare({"a": 1}, {"a": 1, "b": 2}, {})

    assert result.extra_fields == ("b",)
    assert result.missing_fields == ()
    assert not result.success
    assert result.contains_success


def test_ignore_fields_match_leaf_names_at_any_depth():
    result = compare(
        {"a": {"href": "x"}, "href": "y"},
        {"a": {"href": "z"}, "href": "w"},
        {"ignoreFields": ["href"]},
    )
    assert result.success


def test_ignored_extra_fields_are_not_reported():
    result = compare({"id": "p"}, {"id": "p", "href": "/x", "nested": {}}, ComparisonOptions(ignore_fields={"href"}))
    assert result.extra_fields == ("nested",)


def test_nested_paths_and_indices():
    expected = {"a": {"b": [{"c": 1}, {"c": 2}, {"c": 3}]}}
    actual = {"a": {"b": [{"c": 1}, {"c": 2}, {"c": 4, "d": 0}]}}

    result = compare(expected, actual)

    assert [d.path for d in result.differences] == ["a.b[2].c"]
    assert result.extra_fields == ("a.b[2].d",)


def test_array_length_mismatch_skips_elements():
    result = compare({"a": [1, 2]}, {"a": [9, 9, 9]})

    assert result.differences == (Difference("a", "Expected array length 2, got 3"),)


def test_arrays_are_ordered():
    assert not compare([1, 2], [2, 1]).success


def test_object_versus_array():
    result = compare({"a": {}}, {"a": []})
    assert result.differences == (Difference("a", "Expected type object, got array"),)


def test_no_coercion_between_number_and_string():
    result = compare({"count": 1}, {"count": "1"})
    assert result.differences[0].message == "Expected type number, got string"


def test_bool_is_not_a_number():
    assert type_name(True) == "boolean"
    assert not compare({"v": 1}, {"v": True}).success


def test_integer_and_float_compare_by_value():
    assert compare({"v": 1}, {"v": 1.0}).success


def test_case_insensitive_strings():
    assert not compare({"name": "Build"}, {"name": "BUILD"}).success
    assert compare({"name": "Build"}, {"name": "BUILD"}, {"case_sensitive": False}).success


def test_null_handling():
    assert compare({"a": None}, {"a": None}).success
    assert not compare({"a": None}, {"a": 1}).success
    assert compare({"a": None}, {"a": 1}, ComparisonOptions(ignore_null_values=True)).success


def test_undefined_handling():
    assert compare({"a": UNDEFINED}, {"a": UNDEFINED}).success
    assert not compare({"a": UNDEFINED}, {"a": "x"}).success
    assert compare({"a": UNDEFINED}, {"a": "x"}, {"ignoreUndefinedValues": True}).success


def test_root_difference_label():
    result = compare(1, 2)
    assert str(result.differences[0]) == "<root>: Expected 1, got 2"


def test_objects_with_to_dict_are_compared_as_mappings(seeded_generator):
    project = seeded_generator.generate_project_data()
    assert compare(project, project.to_dict()).success


def test_cycles_are_rejected():
    cyclic = {"a": 1}
    cyclic["self"] = cyclic
    with pytest.raises(ValueError, match="self"):
        compare(cyclic, cyclic)


def test_unknown_option_is_rejected():
    with pytest.raises(TypeError):
        ComparisonOptions.coerce({"ignoreCase": True})
