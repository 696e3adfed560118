"""Pipeline registry with trigger detection.

The registry holds pipeline definitions keyed by identifier, in
registration order. Registration order is priority order: when several
pipelines' triggers match the same text, ``detect`` returns the one that
was registered first.

A registry is an explicit value constructed at startup and handed to the
executor; there is no process-wide registry.
"""

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional

from lenschain.core.exceptions import PipelineNotFoundError
from lenschain.pipelines.base import PipelineDefinition, PipelineMatch, TriggerType
from lenschain.pipelines.mapping import UnresolvedReferencePolicy, resolve_input_mapping

logger = logging.getLogger(__name__)


class PipelineRegistry:
    """Registry of pipeline definitions.

    Re-registering an identifier replaces the earlier definition and keeps
    its position in the scan order (last writer wins, no versioning).
    """

    def __init__(self, definitions: Optional[List[PipelineDefinition]] = None):
        """Initialize the registry.

        Args:
            definitions: Optional definitions to register, in priority order.
        """
        # Format: {pipeline_id: definition}, insertion ordered
        self._pipelines: Dict[str, PipelineDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: PipelineDefinition) -> None:
        """Register a pipeline definition.

        Args:
            definition: The pipeline definition to register.

        Raises:
            ValueError: If ``definition`` is not a PipelineDefinition.
        """
        if not isinstance(definition, PipelineDefinition):
            raise ValueError(
                f"Expected PipelineDefinition, got {type(definition).__name__}"
            )

        if definition.id in self._pipelines:
            logger.info(f"Replacing pipeline: {definition.id}")
        else:
            logger.info(f"Registered pipeline: {definition.id}")
        self._pipelines[definition.id] = definition

    def unregister(self, pipeline_id: str) -> bool:
        """Remove a pipeline from the registry.

        Returns:
            True if the pipeline was registered, False otherwise.
        """
        removed = self._pipelines.pop(pipeline_id, None)
        if removed is not None:
            logger.info(f"Unregistered pipeline: {pipeline_id}")
        return removed is not None

    def get(self, pipeline_id: str) -> Optional[PipelineDefinition]:
        """Get a pipeline definition by identifier.

        Returns:
            The definition if found, None otherwise.
        """
        return self._pipelines.get(pipeline_id)

    def require(self, pipeline_id: str) -> PipelineDefinition:
        """Get a pipeline definition, failing if it is not registered.

        Raises:
            PipelineNotFoundError: If the identifier is not registered.
        """
        definition = self._pipelines.get(pipeline_id)
        if definition is None:
            raise PipelineNotFoundError(pipeline_id, self.list_pipelines())
        return definition

    def list_pipelines(self) -> List[str]:
        """List registered pipeline identifiers in priority order."""
        return list(self._pipelines.keys())

    def get_metadata(self, pipeline_id: str) -> Optional[Dict[str, Any]]:
        """Get a summary of a pipeline by identifier.

        Returns:
            Dictionary with id, description, trigger and step summary, or
            None if the pipeline is not registered.
        """
        definition = self.get(pipeline_id)
        if definition is None:
            return None

        return {
            "id": definition.id,
            "description": definition.description,
            "consent_required": definition.consent_required,
            "trigger_type": definition.trigger.type.value,
            "patterns": list(definition.trigger.patterns),
            "extract_variable": definition.trigger.extract_variable,
            "steps": [
                {
                    "order": step.order,
                    "lens": step.lens,
                    "action": step.action,
                    "output_key": step.output_key,
                }
                for step in definition.steps
            ],
            "metadata": dict(definition.metadata),
        }

    def detect(self, text: str) -> Optional[PipelineMatch]:
        """Match free text against the registered triggers.

        Pipelines are scanned in registration order and each trigger's
        patterns in declaration order; the first match wins.

        Args:
            text: Free text, e.g. a chat message.

        Returns:
            PipelineMatch with the pipeline and the extracted variables, or
            None if no trigger matches.
        """
        if not text:
            return None

        for definition in self._pipelines.values():
            trigger = definition.trigger
            if trigger.type != TriggerType.CHAT_INTENT:
                continue

            for pattern in trigger.compiled_patterns():
                match = pattern.search(text)
                if match is None:
                    continue

                variables: Dict[str, Any] = {}
                captured = match.group(1) if pattern.groups >= 1 else None
                if trigger.extract_variable and captured:
                    variables[trigger.extract_variable] = captured.strip()

                logger.debug(
                    f"Text matched pipeline {definition.id} via pattern {pattern.pattern!r}"
                )
                return PipelineMatch(
                    pipeline=definition,
                    variables=variables,
                    pattern=pattern.pattern,
                )

        return None

    def resolve_input_mapping(
        self,
        mapping: Optional[Mapping[str, Any]],
        variables: Mapping[str, Any],
        policy: UnresolvedReferencePolicy = UnresolvedReferencePolicy.LITERAL,
    ) -> Dict[str, Any]:
        """Resolve a step input mapping against a variable context.

        See ``lenschain.pipelines.mapping.resolve_input_mapping``.
        """
        return resolve_input_mapping(mapping, variables, policy)

    def __contains__(self, pipeline_id: object) -> bool:
        return pipeline_id in self._pipelines

    def __iter__(self) -> Iterator[PipelineDefinition]:
        return iter(list(self._pipelines.values()))

    def __len__(self) -> int:
        return len(self._pipelines)
