"""Pipeline definitions, registry and input mapping.

Pipelines define:
- A trigger matched against free text
- A fixed sequence of lens action steps
- How each step's inputs are derived from the variable context

Execution lives in ``lenschain.runtime``; nothing here performs I/O beyond
loading the YAML catalog.
"""

from lenschain.pipelines.base import (
    VARIABLE_SIGIL,
    PipelineDefinition,
    PipelineMatch,
    Step,
    Trigger,
    TriggerType,
)
from lenschain.pipelines.catalog import (
    DEFAULT_CATALOG_DIR,
    build_registry,
    discover_pipelines,
    load_pipeline_definition,
    load_pipeline_definitions,
)
from lenschain.pipelines.mapping import (
    MISSING,
    UnresolvedReferencePolicy,
    lookup_path,
    render_template,
    resolve_input_mapping,
)
from lenschain.pipelines.registry import PipelineRegistry

__all__ = [
    "VARIABLE_SIGIL",
    "PipelineDefinition",
    "PipelineMatch",
    "Step",
    "Trigger",
    "TriggerType",
    "DEFAULT_CATALOG_DIR",
    "build_registry",
    "discover_pipelines",
    "load_pipeline_definition",
    "load_pipeline_definitions",
    "MISSING",
    "UnresolvedReferencePolicy",
    "lookup_path",
    "render_template",
    "resolve_input_mapping",
    "PipelineRegistry",
]
