"""Unit tests for input mapping resolution.

This module tests lookup_path, render_template, resolve_value and
resolve_input_mapping, including the literal fallback for unresolved
references and the strict policy.
"""

from dataclasses import dataclass

import pytest

from lenschain.core.exceptions import MappingResolutionError
from lenschain.pipelines.mapping import (
    MISSING,
    UnresolvedReferencePolicy,
    lookup_path,
    render_template,
    resolve_input_mapping,
    resolve_value,
)


@dataclass
class CarePlan:
    """Artifact returned as an object rather than a dict."""

    title: str
    interventions: list


@pytest.fixture
def variables():
    """Create a sample variable context."""
    return {
        "condition": "diabetes",
        "cond": "X",
        "carePlan": {
            "title": "Diabetes plan",
            "dietaryGuidelines": ["low sugar"],
            "interventions": ["insulin", "monitoring"],
            "nested": {"level": 2},
        },
        "count": 3,
    }


class TestLookupPath:
    """Test lookup_path function."""

    def test_top_level(self, variables):
        """Test a single segment path."""
        assert lookup_path(variables, "condition") == "diabetes"

    def test_nested_mapping(self, variables):
        """Test walking nested mappings."""
        assert lookup_path(variables, "carePlan.nested.level") == 2

    def test_sequence_index(self, variables):
        """Test integer segments index into lists."""
        assert lookup_path(variables, "carePlan.interventions.1") == "monitoring"
        assert lookup_path(variables, "carePlan.interventions.-1") == "monitoring"

    def test_sequence_index_out_of_range(self, variables):
        """Test that an out of range index is missing."""
        assert lookup_path(variables, "carePlan.interventions.5") is MISSING

    def test_missing_key(self, variables):
        """Test that a missing key is reported as MISSING."""
        assert lookup_path(variables, "carePlan.missing") is MISSING
        assert lookup_path(variables, "unknown") is MISSING

    def test_walk_through_scalar(self, variables):
        """Test that walking into a string does not reach its attributes."""
        assert lookup_path(variables, "condition.upper") is MISSING

    def test_object_attribute(self):
        """Test that instance attributes of artifacts are walked."""
        plan = CarePlan(title="Plan", interventions=["a"])
        assert lookup_path({"plan": plan}, "plan.title") == "Plan"
        assert lookup_path({"plan": plan}, "plan.interventions.0") == "a"

    def test_private_attribute_not_walked(self):
        """Test that underscore attributes are not reachable."""

        class Artifact:
            def __init__(self):
                self._secret = "hidden"

        assert lookup_path({"a": Artifact()}, "a._secret") is MISSING

    def test_none_in_path(self):
        """Test that None midway through a path is missing."""
        assert lookup_path({"a": None}, "a.b") is MISSING


class TestRenderTemplate:
    """Test render_template function."""

    def test_substitution(self, variables):
        """Test substitution inside a template."""
        assert render_template("management of $condition", variables) == (
            "management of diabetes"
        )

    def test_every_occurrence_substituted(self):
        """Test that repeated references are all substituted."""
        assert render_template("$x and $x", {"x": "V"}) == "V and V"

    def test_longer_names_first(self, variables):
        """Test that $condition is not clobbered by the shorter $cond."""
        assert render_template("$condition/$cond", variables) == "diabetes/X"

    def test_no_path_walking(self):
        """Test that dotted paths inside templates are not walked."""
        context = {"plan": {"title": "T"}, "x": "V"}
        assert render_template("see $plan.title", context) == "see $plan.title"
        assert render_template("see $x.y", context) == "see V.y"

    def test_non_string_variables_ignored(self, variables):
        """Test that non-string variables are not substituted."""
        assert render_template("total $count", variables) == "total $count"

    def test_unknown_reference_left_alone(self):
        """Test that unknown names stay in the template."""
        assert render_template("hello $who", {}) == "hello $who"


class TestResolveValue:
    """Test resolve_value function."""

    def test_literal_passthrough(self, variables):
        """Test that plain literals are unchanged."""
        assert resolve_value("k", "relocation", variables) == "relocation"
        assert resolve_value("k", 42, variables) == 42
        assert resolve_value("k", ["a"], variables) == ["a"]

    def test_reference(self, variables):
        """Test whole-value references return the referenced value as-is."""
        assert resolve_value("k", "$carePlan.interventions", variables) == [
            "insulin",
            "monitoring",
        ]

    def test_unresolved_literal(self, variables):
        """Test that unresolved references fall back to the literal string."""
        assert resolve_value("k", "$carePlan.unknown", variables) == "$carePlan.unknown"

    def test_none_is_unresolved(self):
        """Test that a None value counts as unresolved."""
        assert resolve_value("k", "$x", {"x": None}) == "$x"

    def test_falsy_values_resolve(self):
        """Test that empty strings and zero are defined values."""
        assert resolve_value("k", "$x", {"x": ""}) == ""
        assert resolve_value("k", "$x", {"x": 0}) == 0

    def test_bare_sigil(self, variables):
        """Test that a lone sigil is unresolved."""
        assert resolve_value("k", "$", variables) == "$"

    def test_strict_raises(self, variables):
        """Test that the strict policy raises on unresolved references."""
        with pytest.raises(MappingResolutionError) as exc_info:
            resolve_value(
                "coverage", "$coverageReport.coveredItems", variables,
                UnresolvedReferencePolicy.STRICT,
            )
        assert exc_info.value.key == "coverage"
        assert exc_info.value.reference == "$coverageReport.coveredItems"
        assert isinstance(exc_info.value, ValueError)


class TestResolveInputMapping:
    """Test resolve_input_mapping function."""

    def test_mixed_mapping(self, variables):
        """Test literals, references and templates in one mapping."""
        mapping = {
            "goal": "management of $condition",
            "restrictions": "$carePlan.dietaryGuidelines",
            "moveType": "relocation",
        }
        assert resolve_input_mapping(mapping, variables) == {
            "goal": "management of diabetes",
            "restrictions": ["low sugar"],
            "moveType": "relocation",
        }

    def test_empty_mapping(self, variables):
        """Test that an empty or missing mapping resolves to {}."""
        assert resolve_input_mapping({}, variables) == {}
        assert resolve_input_mapping(None, variables) == {}

    def test_unresolved_keeps_literal(self):
        """Test the literal fallback for a missing path."""
        assert resolve_input_mapping({"k": "$x.y"}, {}) == {"k": "$x.y"}

    def test_idempotent_and_pure(self, variables):
        """Test that resolution does not mutate its inputs."""
        mapping = {"a": "$carePlan.title", "b": "of $condition"}
        mapping_before = dict(mapping)
        first = resolve_input_mapping(mapping, variables)
        second = resolve_input_mapping(mapping, variables)
        assert first == second
        assert mapping == mapping_before
        assert variables["condition"] == "diabetes"

    def test_policy_by_name(self, variables):
        """Test that the policy may be given by its string value."""
        with pytest.raises(MappingResolutionError):
            resolve_input_mapping({"k": "$missing"}, variables, "strict")

    def test_unknown_policy_rejected(self, variables):
        """Test that an unknown policy name is rejected."""
        with pytest.raises(ValueError):
            resolve_input_mapping({"k": "$condition"}, variables, "lenient")
