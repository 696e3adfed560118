"""Runtime layer for pipeline execution.

This module provides the execution substrate of the system:
- PipelineExecutor: Runs a pipeline's steps to a terminal status
- Collaborators: Action runner, event emitter, stores and providers used by a run
- LensActionRunner: In-process dispatch of lens actions to handlers
- Tracer: Provides tracing with Langfuse integration
"""

from .actions import ActionHandler, LensActionRunner
from .cancellation import CancellationToken
from .collaborators import Collaborators, new_id, utc_now
from .events import (
    EventEmitter,
    EventHandler,
    InMemoryEventBus,
    NullEventEmitter,
    PipelineCompletedEvent,
    PipelineEvent,
    PipelineEventName,
    PipelineStartedEvent,
    PipelineTriggeredEvent,
    StepCompletedEvent,
    StepStartedEvent,
)
from .executor import PipelineExecutor
from .stores import (
    LINEAGE_PIPELINE_EXECUTION,
    LINEAGE_PIPELINE_ID,
    LINEAGE_PIPELINE_STEP,
    ArtifactStore,
    ExecutionStore,
    InMemoryArtifactStore,
    InMemoryExecutionStore,
)
from .tracing import Tracer, get_tracer, set_tracer

__all__ = [
    # Executor
    "PipelineExecutor",
    "Collaborators",
    "new_id",
    "utc_now",
    "CancellationToken",
    # Actions
    "ActionHandler",
    "LensActionRunner",
    # Events
    "EventEmitter",
    "EventHandler",
    "InMemoryEventBus",
    "NullEventEmitter",
    "PipelineEvent",
    "PipelineEventName",
    "PipelineTriggeredEvent",
    "PipelineStartedEvent",
    "StepStartedEvent",
    "StepCompletedEvent",
    "PipelineCompletedEvent",
    # Stores
    "ArtifactStore",
    "ExecutionStore",
    "InMemoryArtifactStore",
    "InMemoryExecutionStore",
    "LINEAGE_PIPELINE_ID",
    "LINEAGE_PIPELINE_STEP",
    "LINEAGE_PIPELINE_EXECUTION",
    # Tracer
    "Tracer",
    "get_tracer",
    "set_tracer",
]
