"""Unit tests for the pipeline catalog loader.

This module tests loading pipeline definitions from YAML files, the
built-in catalog, and populating registries.
"""

from unittest.mock import patch

import pytest

from lenschain.pipelines.catalog import (
    DEFAULT_CATALOG_DIR,
    build_registry,
    discover_pipelines,
    load_pipeline_definition,
    load_pipeline_definitions,
)
from lenschain.pipelines.registry import PipelineRegistry

VALID_PIPELINE = """
id: weekend-trip
description: Trip planning
trigger:
  type: chat_intent
  patterns:
    - 'trip to (.+)'
  extract_variable: destination
steps:
  - order: 1
    lens: travel
    action: plan-itinerary
    input_mapping:
      destination: $destination
    output_key: itinerary
"""


@pytest.fixture
def catalog_dir(tmp_path):
    """Create a catalog directory with one valid definition."""
    (tmp_path / "10_weekend_trip.yaml").write_text(VALID_PIPELINE)
    return tmp_path


class TestLoadPipelineDefinition:
    """Test load_pipeline_definition function."""

    def test_load_valid(self, catalog_dir):
        """Test loading a valid definition."""
        definition = load_pipeline_definition(catalog_dir / "10_weekend_trip.yaml")

        assert definition.id == "weekend-trip"
        assert definition.consent_required is False
        assert definition.trigger.extract_variable == "destination"
        assert definition.steps[0].input_mapping == {"destination": "$destination"}

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_pipeline_definition(tmp_path / "nope.yaml")

    def test_not_a_mapping(self, tmp_path):
        """Test that a YAML list is rejected."""
        path = tmp_path / "bad.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError) as exc_info:
            load_pipeline_definition(path)
        assert "must be a mapping" in str(exc_info.value)

    def test_invalid_definition(self, tmp_path):
        """Test that schema violations become ValueError."""
        path = tmp_path / "bad.yaml"
        path.write_text("id: broken\ntrigger:\n  patterns: ['x']\nsteps: []\n")
        with pytest.raises(ValueError) as exc_info:
            load_pipeline_definition(path)
        assert "Invalid pipeline definition" in str(exc_info.value)


class TestLoadPipelineDefinitions:
    """Test load_pipeline_definitions function."""

    def test_file_name_order(self, catalog_dir):
        """Test that files load in file-name order."""
        (catalog_dir / "05_first.yml").write_text(
            VALID_PIPELINE.replace("weekend-trip", "first-trip")
        )
        definitions = load_pipeline_definitions(catalog_dir)
        assert [d.id for d in definitions] == ["first-trip", "weekend-trip"]

    def test_ignores_other_files(self, catalog_dir):
        """Test that non-YAML files are ignored."""
        (catalog_dir / "README.md").write_text("# notes")
        assert len(load_pipeline_definitions(catalog_dir)) == 1

    def test_skips_invalid_when_not_strict(self, catalog_dir):
        """Test that invalid files are logged and skipped."""
        (catalog_dir / "20_bad.yaml").write_text("id: [unclosed")

        with patch("lenschain.pipelines.catalog.logger") as mock_logger:
            definitions = load_pipeline_definitions(catalog_dir)

        assert [d.id for d in definitions] == ["weekend-trip"]
        mock_logger.warning.assert_called_once()
        assert "20_bad.yaml" in mock_logger.warning.call_args[0][0]

    def test_raises_invalid_when_strict(self, catalog_dir):
        """Test that strict mode raises on invalid files."""
        (catalog_dir / "20_bad.yaml").write_text("- not a mapping\n")
        with pytest.raises(ValueError):
            load_pipeline_definitions(catalog_dir, strict=True)

    def test_missing_directory(self, tmp_path):
        """Test that a missing directory yields no definitions."""
        assert load_pipeline_definitions(tmp_path / "missing") == []

    def test_missing_directory_strict(self, tmp_path):
        """Test that strict mode raises on a missing directory."""
        with pytest.raises(FileNotFoundError):
            load_pipeline_definitions(tmp_path / "missing", strict=True)


class TestBuiltinCatalog:
    """Test the built-in pipeline catalog."""

    def test_builtin_pipelines(self):
        """Test that the four built-in pipelines load in priority order."""
        definitions = load_pipeline_definitions(DEFAULT_CATALOG_DIR, strict=True)
        assert [d.id for d in definitions] == [
            "chronic-diagnosis",
            "start-business",
            "move-to-new-city",
            "new-baby",
        ]
        assert all(d.consent_required for d in definitions)

    def test_builtin_step_counts(self):
        """Test the number of steps of each built-in pipeline."""
        registry = build_registry()
        assert [len(p.steps) for p in registry] == [5, 4, 4, 5]

    def test_chronic_diagnosis_detection(self):
        """Test detection against the built-in catalog."""
        registry = build_registry()
        match = registry.detect("My doctor said I have Type 2 Diabetes")

        assert match.pipeline.id == "chronic-diagnosis"
        assert match.variables == {"condition": "Type 2 Diabetes"}

    def test_move_detection(self):
        """Test relocation detection against the built-in catalog."""
        match = build_registry().detect("I am moving to Denver")
        assert match.pipeline.id == "move-to-new-city"
        assert match.variables == {"city": "Denver"}

    def test_new_baby_detection(self):
        """Test that the new-baby pipeline extracts no variables."""
        match = build_registry().detect("We're expecting a child in May")
        assert match.pipeline.id == "new-baby"
        assert match.variables == {}

    def test_chronic_diagnosis_mapping(self):
        """Test resolving the fitness step's mapping of the diagnosis pipeline."""
        registry = build_registry()
        fitness_step = registry.require("chronic-diagnosis").steps[2]
        resolved = registry.resolve_input_mapping(
            fitness_step.input_mapping,
            {"condition": "asthma", "carePlan": {"physicalRestrictions": ["no sprinting"]}},
        )
        assert resolved == {
            "goal": "management of asthma",
            "restrictions": ["no sprinting"],
        }


class TestRegistryPopulation:
    """Test discover_pipelines and build_registry."""

    def test_discover_registers_new(self, catalog_dir):
        """Test that discovered pipelines are registered."""
        registry = PipelineRegistry()
        assert discover_pipelines(registry, catalog_dir) == ["weekend-trip"]
        assert "weekend-trip" in registry

    def test_discover_is_repeatable(self, catalog_dir):
        """Test that a second discovery registers nothing new."""
        registry = PipelineRegistry()
        discover_pipelines(registry, catalog_dir)
        assert discover_pipelines(registry, catalog_dir) == []
        assert len(registry) == 1

    def test_build_registry_custom_dir(self, catalog_dir):
        """Test building a registry from a custom directory."""
        registry = build_registry(catalog_dir)
        assert registry.list_pipelines() == ["weekend-trip"]

    def test_build_registry_empty(self):
        """Test that load_builtin=False gives an empty registry."""
        assert len(build_registry(load_builtin=False)) == 0
