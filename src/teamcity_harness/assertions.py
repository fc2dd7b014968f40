"""Assertion helpers turning comparison results into test failures."""
from __future__ import annotations

from typing import Any, List, Mapping

from teamcity_harness.comparison import ComparisonOptions, ComparisonResult, compare


class ComparisonFailure(AssertionError):
    """Raised when two structures do not match; carries the full report."""

    def __init__(self, message: str, result: ComparisonResult | None = None):
        super().__init__(message)
        self.message = message
        self.result = result


def format_failure(result: ComparisonResult, header: str | None = None, include_extras: bool = True) -> str:
    """Render ``result`` as a multi-section report (empty sections omitted)."""
    parts: List[str] = []
    if header:
        parts.append(header)

    if result.differences:
        parts.append("Differences:")
        parts.extend(f"  - {difference}" for difference in result.differences)

    if result.missing_fields:
        parts.append("Missing fields:")
        parts.extend(f"  - {name}" for name in result.missing_fields)

    if include_extras and result.extra_fields:
        parts.append("Extra fields:")
        parts.extend(f"  - {name}" for name in result.extra_fields)

    return "\n".join(parts)


class ModelAssertions:
    """Static entry points for structural assertions."""

    @staticmethod
    def compare_objects(expected: Any, actual: Any, options: ComparisonOptions | Mapping[str, Any] | None = None) -> ComparisonResult:
        return compare(expected, actual, options)

    @staticmethod
    def assert_equal(
        expected: Any,
        actual: Any,
        message: str | None = None,
        options: ComparisonOptions | Mapping[str, Any] | None = None,
    ) -> None:
        result = compare(expected, actual, options)
        if not result.success:
            text = format_failure(result, message or "Objects are not equal")
            raise ComparisonFailure(text, result)

    @staticmethod
    def assert_contains(
        container: Any,
        subset: Any,
        message: str | None = None,
        options: ComparisonOptions | Mapping[str, Any] | None = None,
    ) -> None:
        """Pass when ``container`` holds every field of ``subset`` with equal values."""
        result = compare(subset, container, options)
        if not result.contains_success:
            text = format_failure(
                result,
                message or "Object does not contain expected fields",
                include_extras=False,
            )
            raise ComparisonFailure(text, result)

    @staticmethod
    def assert_matches(
        actual: Any,
        pattern: Any,
        message: str | None = None,
        options: ComparisonOptions | Mapping[str, Any] | None = None,
    ) -> None:
        result = compare(pattern, actual, options)
        if not result.success:
            text = format_failure(result, message or "Object does not match pattern")
            raise ComparisonFailure(text, result)

    @staticmethod
    def assert_rules(payload: Mapping[str, Any], rules: Any, message: str | None = None) -> None:
        """Fail when fields of ``payload`` break any rule of a ``ModelRules`` set."""
        failing = rules.validate(payload)
        if failing:
            lines = [message or "Payload violates field rules", "Rule violations:"]
            lines.extend(f"  - {path}" for path in failing)
            raise ComparisonFailure("\n".join(lines))

    match = assert_equal


class ModelComparison:
    """Fluent request/response comparison.

    ``request`` is what the test sent and ``response`` what the server
    returned; each check accepts options or keyword overrides:

        assert_that_models(project, response.data).contains(ignore_fields=["href"])
    """

    def __init__(self, request: Any, response: Any):
        self.request = request
        self.response = response

    def match(self, options: ComparisonOptions | Mapping[str, Any] | None = None, **overrides: Any) -> None:
        ModelAssertions.assert_equal(
            self.request,
            self.response,
            "Request and response data do not match",
            ComparisonOptions.coerce(options, **overrides),
        )

    def contains(self, options: ComparisonOptions | Mapping[str, Any] | None = None, **overrides: Any) -> None:
        ModelAssertions.assert_contains(
            self.response,
            self.request,
            "Response does not contain expected request fields",
            ComparisonOptions.coerce(options, **overrides),
        )

    def matches_pattern(self, options: ComparisonOptions | Mapping[str, Any] | None = None, **overrides: Any) -> None:
        ModelAssertions.assert_matches(
            self.response,
            self.request,
            "Response does not match expected pattern",
            ComparisonOptions.coerce(options, **overrides),
        )


def assert_that_models(request: Any, response: Any) -> ModelComparison:
    return ModelComparison(request, response)

