"""Pipeline lifecycle events and the in-memory event bus.

Events form a closed set of typed models, one per lifecycle point, so
emitters and consumers agree on payload shapes:

- pipeline:triggered       text matched a pipeline trigger
- pipeline:started         an execution was created
- pipeline:step_started    a step is about to run
- pipeline:step_completed  a step reached a terminal status
- pipeline:completed       the execution reached a terminal status

Delivery is fire-and-forget and at-most-once. A failing subscriber is
logged and never affects the publisher.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field

from lenschain.core.execution import ExecutionStatus, StepStatus

logger = logging.getLogger(__name__)


class PipelineEventName(str, Enum):
    """Enumeration of lifecycle event names."""

    TRIGGERED = "pipeline:triggered"
    STARTED = "pipeline:started"
    STEP_STARTED = "pipeline:step_started"
    STEP_COMPLETED = "pipeline:step_completed"
    COMPLETED = "pipeline:completed"


class _PipelineEventBase(BaseModel):
    """Fields shared by every lifecycle event."""

    pipeline_id: str = Field(..., description="Pipeline the event refers to")
    user_id: Optional[str] = Field(default=None, description="Requesting user")
    session_id: Optional[str] = Field(default=None, description="Requesting session")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Timestamp when the event was emitted",
    )


class PipelineTriggeredEvent(_PipelineEventBase):
    """Free text matched a pipeline trigger."""

    name: Literal[PipelineEventName.TRIGGERED] = PipelineEventName.TRIGGERED
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Variables extracted by the trigger"
    )
    consent_required: bool = Field(
        default=False, description="Whether the pipeline requires consent"
    )


class PipelineStartedEvent(_PipelineEventBase):
    """An execution was created and is about to run its first step."""

    name: Literal[PipelineEventName.STARTED] = PipelineEventName.STARTED
    execution_id: str = Field(..., description="Execution identifier")
    step_count: int = Field(..., description="Number of steps in the pipeline")


class StepStartedEvent(_PipelineEventBase):
    """A step is about to run."""

    name: Literal[PipelineEventName.STEP_STARTED] = PipelineEventName.STEP_STARTED
    execution_id: str = Field(..., description="Execution identifier")
    step_order: int = Field(..., description="Declared order of the step")
    lens: str = Field(..., description="Lens of the step")
    action: str = Field(..., description="Action of the step")


class StepCompletedEvent(_PipelineEventBase):
    """A step reached a terminal status."""

    name: Literal[PipelineEventName.STEP_COMPLETED] = PipelineEventName.STEP_COMPLETED
    execution_id: str = Field(..., description="Execution identifier")
    step_order: int = Field(..., description="Declared order of the step")
    lens: str = Field(..., description="Lens of the step")
    action: str = Field(..., description="Action of the step")
    status: StepStatus = Field(..., description="Terminal status of the step")
    dtu_id: Optional[str] = Field(default=None, description="Artifact produced by the step")
    error: Optional[str] = Field(default=None, description="Error message if the step failed")


class PipelineCompletedEvent(_PipelineEventBase):
    """The execution reached a terminal status."""

    name: Literal[PipelineEventName.COMPLETED] = PipelineEventName.COMPLETED
    execution_id: str = Field(..., description="Execution identifier")
    status: ExecutionStatus = Field(..., description="Terminal status of the execution")
    dtu_ids: List[str] = Field(
        default_factory=list, description="Artifacts produced by the run, in step order"
    )


PipelineEvent = Union[
    PipelineTriggeredEvent,
    PipelineStartedEvent,
    StepStartedEvent,
    StepCompletedEvent,
    PipelineCompletedEvent,
]

EventHandler = Callable[[PipelineEvent], Any]


class EventEmitter(Protocol):
    """Contract for the event-notification collaborator."""

    def publish(self, event: PipelineEvent) -> None:
        """Publish an event. Must not raise."""
        ...


class NullEventEmitter:
    """Emitter that drops every event."""

    def publish(self, event: PipelineEvent) -> None:
        return None


class InMemoryEventBus:
    """In-process publish/subscribe bus for lifecycle events.

    Handlers are plain callables invoked synchronously, in subscription
    order. Handlers subscribed with ``name=None`` receive every event.
    A bounded history of published events is kept for inspection.
    """

    def __init__(self, history_size: int = 1000):
        """Initialize the event bus.

        Args:
            history_size: Number of published events to keep. 0 disables
                the history.
        """
        self._lock = threading.Lock()
        self._handlers: Dict[Optional[PipelineEventName], List[EventHandler]] = {}
        self._history: Deque[PipelineEvent] = deque(maxlen=history_size or None)
        self._keep_history = history_size > 0

    def subscribe(
        self,
        handler: EventHandler,
        name: Optional[Union[PipelineEventName, str]] = None,
    ) -> Callable[[], None]:
        """Subscribe a handler to one event name, or to all events.

        Returns:
            A callable that removes the subscription.
        """
        key = PipelineEventName(name) if name is not None else None
        with self._lock:
            self._handlers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(key, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, event: PipelineEvent) -> None:
        """Deliver an event to its subscribers."""
        with self._lock:
            if self._keep_history:
                self._history.append(event)
            handlers = list(self._handlers.get(event.name, [])) + list(
                self._handlers.get(None, [])
            )

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.warning(
                    f"Event handler {getattr(handler, '__name__', handler)!r} "
                    f"failed on {event.name.value}: {e}",
                    exc_info=True,
                )

    def history(self, name: Optional[Union[PipelineEventName, str]] = None) -> List[PipelineEvent]:
        """Published events, oldest first, optionally filtered by name."""
        with self._lock:
            events = list(self._history)
        if name is None:
            return events
        key = PipelineEventName(name)
        return [event for event in events if event.name == key]

    def clear_history(self) -> None:
        """Drop the recorded history."""
        with self._lock:
            self._history.clear()
