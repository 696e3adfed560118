"""Core pipeline data model.

This module provides the foundational types shared by the registry and
the executor:
- Execution, StepExecution: runtime records of a pipeline run
- ExecutionStatus, StepStatus: status enumerations
- Identity: requester identity
- Exceptions raised by the core
"""

from .exceptions import (
    ConsentRequiredError,
    LensChainError,
    MappingResolutionError,
    PipelineNotFoundError,
)
from .execution import Execution, ExecutionStatus, Identity, StepExecution, StepStatus

__all__ = [
    "ConsentRequiredError",
    "LensChainError",
    "MappingResolutionError",
    "PipelineNotFoundError",
    "Execution",
    "ExecutionStatus",
    "Identity",
    "StepExecution",
    "StepStatus",
]
