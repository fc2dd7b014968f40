"""Structural comparison of JSON-shaped values.

Two independent walks are made over the inputs:

1. ``expected`` against ``actual`` collects value differences and keys of
   ``expected`` that ``actual`` lacks (missing fields);
2. ``actual`` against ``expected`` collects keys that ``expected`` lacks
   (extra fields).

Paths use ``a.b[2].c`` notation; the root path is empty and rendered as
``<root>`` in difference messages. Field names in ``ignore_fields`` are
matched on the leaf key, at any depth, in both walks.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, List, Tuple

ROOT_LABEL = "<root>"


class _Undefined:
    """Marker for a value that is absent rather than null."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class Difference:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or ROOT_LABEL}: {self.message}"


@dataclass(frozen=True)
class ComparisonResult:
    differences: Tuple[Difference, ...] = ()
    missing_fields: Tuple[str, ...] = ()
    extra_fields: Tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return not (self.differences or self.missing_fields or self.extra_fields)

    @property
    def contains_success(self) -> bool:
        """True when only extra fields (if any) were found."""
        return not (self.differences or self.missing_fields)


_OPTION_ALIASES = {
    "ignoreFields": "ignore_fields",
    "ignoreNullValues": "ignore_null_values",
    "ignoreUndefinedValues": "ignore_undefined_values",
    "caseSensitive": "case_sensitive",
}


@dataclass(frozen=True)
class ComparisonOptions:
    ignore_fields: frozenset = field(default_factory=frozenset)
    ignore_null_values: bool = False
    ignore_undefined_values: bool = False
    case_sensitive: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.ignore_fields, str):
            object.__setattr__(self, "ignore_fields", frozenset({self.ignore_fields}))
        elif not isinstance(self.ignore_fields, frozenset):
            object.__setattr__(self, "ignore_fields", frozenset(self.ignore_fields or ()))

    @classmethod
    def coerce(cls, options: "ComparisonOptions | Mapping[str, Any] | None" = None, **overrides: Any) -> "ComparisonOptions":
        """Build options from an instance, a mapping or keyword overrides.

        Mapping and keyword keys may be snake_case or camelCase.
        """
        values: dict = {}
        if isinstance(options, ComparisonOptions):
            values = {
                "ignore_fields": options.ignore_fields,
                "ignore_null_values": options.ignore_null_values,
                "ignore_undefined_values": options.ignore_undefined_values,
                "case_sensitive": options.case_sensitive,
            }
        elif isinstance(options, Mapping):
            values = dict(options)
        elif options is not None:
            raise TypeError(f"Unsupported comparison options: {type(options).__name__}")

        values.update(overrides)
        normalized = {}
        for key, value in values.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in {"ignore_fields", "ignore_null_values", "ignore_undefined_values", "case_sensitive"}:
                raise TypeError(f"Unknown comparison option: {key}")
            normalized[name] = value
        return cls(**normalized)


def type_name(value: Any) -> str:
    """Name the JSON type of ``value`` (``bool`` is not a number)."""
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _normalize(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict) and not isinstance(value, Mapping):
        return to_dict()
    return value


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _join(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


class _Walker:
    def __init__(self, options: ComparisonOptions) -> None:
        self.options = options
        self.differences: List[Difference] = []
        self.missing_fields: List[str] = []
        self.extra_fields: List[str] = []
        self._active: set = set()

    def _enter(self, value: Any, path: str) -> None:
        if id(value) in self._active:
            raise ValueError(f"Cyclic structure detected at {path or ROOT_LABEL}")
        self._active.add(id(value))

    def compare(self, expected: Any, actual: Any, path: str) -> None:
        expected = _normalize(expected)
        actual = _normalize(actual)

        if expected is None and actual is None:
            return
        if expected is UNDEFINED and actual is UNDEFINED:
            return
        if expected is None and self.options.ignore_null_values:
            return
        if expected is UNDEFINED and self.options.ignore_undefined_values:
            return

        expected_type = type_name(expected)
        actual_type = type_name(actual)
        if expected_type != actual_type:
            self.differences.append(Difference(path, f"Expected type {expected_type}, got {actual_type}"))
            return

        if expected_type == "object":
            self._enter(expected, path)
            try:
                self._compare_mappings(expected, actual, path)
            finally:
                self._active.discard(id(expected))
        elif expected_type == "array":
            self._enter(expected, path)
            try:
                self._compare_arrays(expected, actual, path)
            finally:
                self._active.discard(id(expected))
        else:
            self._compare_scalars(expected, actual, path)

    def _compare_mappings(self, expected: Mapping, actual: Mapping, path: str) -> None:
        for key, value in expected.items():
            if key in self.options.ignore_fields:
                continue
            child = _join(path, key)
            if key not in actual:
                self.missing_fields.append(child)
                continue
            self.compare(value, actual[key], child)

    def _compare_arrays(self, expected: Any, actual: Any, path: str) -> None:
        if len(expected) != len(actual):
            self.differences.append(
                Difference(path, f"Expected array length {len(expected)}, got {len(actual)}")
            )
            return
        for index, (left, right) in enumerate(zip(expected, actual)):
            self.compare(left, right, f"{path}[{index}]")

    def _compare_scalars(self, expected: Any, actual: Any, path: str) -> None:
        left, right = expected, actual
        if _is_nan(left) and _is_nan(right):
            return
        if not self.options.case_sensitive and isinstance(left, str) and isinstance(right, str):
            left, right = left.casefold(), right.casefold()
        if left != right:
            self.differences.append(Difference(path, f"Expected {expected!r}, got {actual!r}"))

    def find_extras(self, expected: Any, actual: Any, path: str) -> None:
        expected = _normalize(expected)
        actual = _normalize(actual)

        if isinstance(actual, Mapping) and isinstance(expected, Mapping):
            self._enter(actual, path)
            try:
                for key, value in actual.items():
                    if key in self.options.ignore_fields:
                        continue
                    child = _join(path, key)
                    if key not in expected:
                        self.extra_fields.append(child)
                    else:
                        self.find_extras(expected[key], value, child)
            finally:
                self._active.discard(id(actual))
        elif (
            type_name(actual) == "array"
            and type_name(expected) == "array"
            and len(actual) == len(expected)
        ):
            self._enter(actual, path)
            try:
                for index, (left, right) in enumerate(zip(expected, actual)):
                    self.find_extras(left, right, f"{path}[{index}]")
            finally:
                self._active.discard(id(actual))


def compare(expected: Any, actual: Any, options: ComparisonOptions | Mapping[str, Any] | None = None) -> ComparisonResult:
    """Compare ``expected`` with ``actual`` and report every mismatch.

    Args:
        expected: Tree of mappings, lists and scalars (or objects with ``to_dict``)
        actual: Value to check against ``expected``
        options: ``ComparisonOptions``, a mapping of option names, or None

    Returns:
        ComparisonResult with differences, missing and extra field paths

    Raises:
        ValueError: If either input contains a reference cycle
    """
    resolved = ComparisonOptions.coerce(options)
    walker = _Walker(resolved)
    walker.compare(expected, actual, "")
    walker.find_extras(expected, actual, "")
    return ComparisonResult(
        differences=tuple(walker.differences),
        missing_fields=tuple(walker.missing_fields),
        extra_fields=tuple(walker.extra_fields),
    )

