"""Field rules and shape validation for TeamCity payloads."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Pattern, Type

from teamcity_harness.comparison import type_name
from teamcity_harness.models import ResponseModel


class RuleType(str, Enum):
    EXACT = "exact"
    PATTERN = "pattern"
    REGEX = "regex"
    CUSTOM = "custom"


@dataclass
class FieldRule:
    type: RuleType | str
    value: Any = None
    pattern: str | None = None
    regex: Pattern[str] | None = None
    custom_validator: Callable[[Any], bool] | None = None
    ignore_case: bool = False
    optional: bool = False

    def __post_init__(self) -> None:
        self.type = RuleType(self.type)

    def check(self, value: Any) -> bool:
        """Return True when ``value`` satisfies the rule."""
        if self.optional and value is None:
            return True

        if self.type is RuleType.EXACT:
            if self.value is None:
                return True
            if self.ignore_case:
                return str(value).casefold() == str(self.value).casefold()
            return value == self.value

        if self.type is RuleType.PATTERN:
            if not self.pattern:
                return True
            flags = re.IGNORECASE if self.ignore_case else 0
            return re.search(self.pattern, str(value), flags) is not None

        if self.type is RuleType.REGEX:
            if self.regex is None:
                return True
            return self.regex.search(str(value)) is not None

        if self.custom_validator is None:
            return True
        return bool(self.custom_validator(value))


class ModelRules:
    """A named set of field rules keyed by dotted field path."""

    def __init__(self, rules: Mapping[str, FieldRule] | None = None):
        self._rules: Dict[str, FieldRule] = dict(rules or {})

    @classmethod
    def teamcity_defaults(cls) -> "ModelRules":
        return cls(
            {
                "id": FieldRule(RuleType.PATTERN, pattern=r"^[a-zA-Z][a-zA-Z0-9_]*$"),
                "name": FieldRule(RuleType.EXACT),
                "href": FieldRule(RuleType.PATTERN, pattern=r"^/app/rest/.*$", optional=True),
                "webUrl": FieldRule(RuleType.PATTERN, pattern=r"^http://.*$", optional=True),
                "count": FieldRule(
                    RuleType.CUSTOM,
                    custom_validator=lambda value: type_name(value) == "number" and value >= 0,
                    optional=True,
                ),
                "virtual": FieldRule(RuleType.EXACT, optional=True),
            }
        )

    def add_rule(self, path: str, rule: FieldRule) -> None:
        self._rules[path] = rule

    def remove_rule(self, path: str) -> None:
        self._rules.pop(path, None)

    def clear(self) -> None:
        self._rules.clear()

    def get(self, path: str) -> FieldRule | None:
        return self._rules.get(path)

    def all(self) -> Dict[str, FieldRule]:
        return dict(self._rules)

    def validate_field(self, path: str, value: Any) -> bool:
        rule = self._rules.get(path)
        if rule is None:
            return True
        return rule.check(value)

    def validate(self, payload: Mapping[str, Any]) -> List[str]:
        """Return the paths of ``payload`` that break a rule.

        A required rule whose path is absent from ``payload`` counts as broken.
        """
        failing = []
        for path, rule in self._rules.items():
            found, value = _lookup(payload, path)
            if not found:
                if not rule.optional:
                    failing.append(path)
                continue
            if not rule.check(value):
                failing.append(path)
        return failing


def _lookup(payload: Any, path: str) -> tuple:
    current = payload
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return False, None
        current = current[part]
    return True, current


@dataclass
class TypeMismatch:
    field: str
    expected: str
    actual: str


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    missing_fields: List[str] = field(default_factory=list)
    extra_fields: List[str] = field(default_factory=list)
    type_mismatches: List[TypeMismatch] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_shape(
    data: Mapping[str, Any],
    model_cls: Type[ResponseModel],
    ignore_fields: Iterable[str] = (),
    allow_extra_fields: bool = False,
    strict_types: bool = False,
) -> ValidationResult:
    """Check ``data`` against the fields declared by ``model_cls``.

    Missing required fields and empty required strings are errors; extra
    fields are warnings unless ``allow_extra_fields``; JSON type mismatches
    are errors only with ``strict_types``.
    """
    ignored = set(ignore_fields)
    declared = model_cls.wire_fields()
    result = ValidationResult()

    for wire, spec in declared.items():
        if wire in ignored:
            continue
        if wire not in data:
            if not spec["optional"]:
                result.missing_fields.append(wire)
                result.errors.append(f"Missing required field: {wire}")
            continue

        value = data[wire]
        if value is None:
            if not spec["optional"]:
                result.errors.append(f"Field {wire} is required but missing")
            continue

        actual_type = type_name(value)
        if actual_type != spec["json_type"]:
            if strict_types:
                result.type_mismatches.append(TypeMismatch(wire, spec["json_type"], actual_type))
                result.errors.append(f"Type mismatch for {wire}: expected {spec['json_type']}, got {actual_type}")
            continue

        if actual_type == "string" and not spec["optional"] and value == "":
            result.errors.append(f"Field {wire} cannot be empty")

    if not allow_extra_fields:
        for key in data:
            if key not in declared and key not in ignored:
                result.extra_fields.append(key)
                result.warnings.append(f"Extra field found: {key}")

    return result
