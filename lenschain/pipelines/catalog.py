"""Pipeline catalog loading.

Pipeline definitions ship as YAML files, one pipeline per file, under
``lenschain/configs/pipelines``. Files are loaded in file-name order, which
becomes the registry's priority order, so the built-in files carry a
numeric prefix.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import ValidationError

from lenschain.pipelines.base import PipelineDefinition
from lenschain.pipelines.registry import PipelineRegistry

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_DIR = Path(__file__).parent.parent / "configs" / "pipelines"

_YAML_SUFFIXES = (".yaml", ".yml")


def load_pipeline_definition(path: Union[str, Path]) -> PipelineDefinition:
    """Load a single pipeline definition from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        The validated PipelineDefinition.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a mapping or fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline definition not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Pipeline definition {path} must be a mapping, got {type(data).__name__}")

    try:
        return PipelineDefinition.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid pipeline definition in {path}: {e}") from e


def load_pipeline_definitions(
    directory: Union[str, Path] = DEFAULT_CATALOG_DIR,
    strict: bool = False,
) -> List[PipelineDefinition]:
    """Load every pipeline definition in a directory, in file-name order.

    Args:
        directory: Directory containing ``*.yaml``/``*.yml`` files.
        strict: If True, a file that fails to load raises. Otherwise it is
            logged and skipped.

    Returns:
        The loaded definitions in file-name order.
    """
    directory = Path(directory)
    if not directory.is_dir():
        if strict:
            raise FileNotFoundError(f"Pipeline catalog directory not found: {directory}")
        logger.warning(f"Pipeline catalog directory not found: {directory}")
        return []

    definitions = []
    for path in sorted(p for p in directory.iterdir() if p.suffix in _YAML_SUFFIXES):
        try:
            definitions.append(load_pipeline_definition(path))
        except (OSError, ValueError, yaml.YAMLError) as e:
            if strict:
                raise
            logger.warning(f"Skipping pipeline definition {path.name}: {e}")

    logger.debug(f"Loaded {len(definitions)} pipeline definitions from {directory}")
    return definitions


def discover_pipelines(
    registry: PipelineRegistry,
    directory: Union[str, Path] = DEFAULT_CATALOG_DIR,
    strict: bool = False,
) -> List[str]:
    """Load a catalog directory into a registry.

    Pipelines already registered under the same identifier are left alone,
    so calling this more than once is safe.

    Returns:
        Identifiers of the pipelines that were newly registered.
    """
    registered = []
    for definition in load_pipeline_definitions(directory, strict=strict):
        if definition.id in registry:
            logger.debug(f"Pipeline {definition.id} already registered, skipping")
            continue
        registry.register(definition)
        registered.append(definition.id)
    return registered


def build_registry(
    directory: Optional[Union[str, Path]] = None,
    load_builtin: bool = True,
) -> PipelineRegistry:
    """Create a registry, optionally populated from a catalog directory.

    Args:
        directory: Catalog directory. Defaults to the built-in catalog.
        load_builtin: If False, an empty registry is returned.
    """
    registry = PipelineRegistry()
    if load_builtin:
        discover_pipelines(registry, directory or DEFAULT_CATALOG_DIR)
    return registry
