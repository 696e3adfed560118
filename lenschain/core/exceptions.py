"""Exception types raised by the pipeline core.

Only definition errors (an unknown pipeline id, an invalid definition) escape
a pipeline run. Mapping and action failures are captured into the
Execution record instead of being raised to the caller.
"""

from typing import List, Optional


class LensChainError(Exception):
    """Base class for all lenschain errors."""


class PipelineNotFoundError(LensChainError, KeyError):
    """Raised when a pipeline identifier is not registered."""

    def __init__(self, pipeline_id: str, available: Optional[List[str]] = None):
        self.pipeline_id = pipeline_id
        self.available = list(available or [])
        message = f"Unknown pipeline: {pipeline_id}"
        if self.available:
            message += f". Available pipelines: {self.available}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError.__str__ would wrap the message in quotes
        return str(self.args[0])


class MappingResolutionError(LensChainError, ValueError):
    """Raised when a step's input mapping cannot be resolved.

    Attributes:
        key: The input parameter whose value could not be resolved.
        reference: The variable reference as declared (e.g. "$carePlan.title").
    """

    def __init__(self, key: str, reference: str, reason: str = "unresolved variable reference"):
        self.key = key
        self.reference = reference
        super().__init__(f"Cannot resolve input '{key}' from {reference}: {reason}")


class ConsentRequiredError(LensChainError):
    """Raised when a pipeline requiring consent is triggered without it."""

    def __init__(self, pipeline_id: str, user_id: Optional[str] = None):
        self.pipeline_id = pipeline_id
        self.user_id = user_id
        super().__init__(
            f"Pipeline {pipeline_id} requires consent"
            + (f" from user {user_id}" if user_id else "")
        )
