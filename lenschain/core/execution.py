"""Execution records for pipeline runs.

An Execution is created per pipeline run, mutated only by the executor
while the run is in progress, and treated as an immutable historical
record once it reaches a terminal status.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Status enumeration for pipeline executions.

    There is no failed state for a run as a whole: a chain that stops on
    its first step is still PARTIAL.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"


class StepStatus(str, Enum):
    """Status enumeration for a single attempted step."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the status is final."""
        return self != StepStatus.RUNNING


class Identity(BaseModel):
    """Requester identity, used for tagging and event payloads only."""

    user_id: Optional[str] = Field(default=None, description="Identifier of the requesting user")
    session_id: Optional[str] = Field(
        default=None, description="Identifier of the requesting session"
    )


class StepExecution(BaseModel):
    """Outcome of one attempted step.

    Attributes:
        order: The step's declared order.
        lens: Lens the action belongs to.
        action: Action that was invoked.
        status: Terminal status once the step has finished.
        started_at: Timestamp when the step started.
        completed_at: Timestamp when the step finished.
        dtu_id: Identifier of the artifact produced by the step, if any.
        error: Error message if the step did not complete.
    """

    order: int = Field(..., description="The step's declared order")
    lens: str = Field(..., description="Lens the action belongs to")
    action: str = Field(..., description="Action that was invoked")
    status: StepStatus = Field(default=StepStatus.RUNNING, description="Step status")
    started_at: datetime = Field(..., description="Timestamp when the step started")
    completed_at: Optional[datetime] = Field(
        default=None, description="Timestamp when the step finished"
    )
    dtu_id: Optional[str] = Field(
        default=None, description="Identifier of the artifact produced by the step"
    )
    error: Optional[str] = Field(default=None, description="Error message if the step failed")

    def is_success(self) -> bool:
        """Check if the step completed successfully."""
        return self.status == StepStatus.COMPLETED


class Execution(BaseModel):
    """Runtime record of one pipeline run.

    ``variables`` starts as a copy of the trigger-extracted variables and
    gains one entry per completed step that declares an output key.
    ``steps`` holds one record per attempted step; steps after the first
    failure are never attempted and never appear here.
    """

    id: str = Field(..., description="Unique identifier for the execution")
    pipeline_id: str = Field(..., description="Identifier of the executed pipeline")
    identity: Identity = Field(default_factory=Identity, description="Requester identity")
    status: ExecutionStatus = Field(
        default=ExecutionStatus.RUNNING, description="Current execution status"
    )
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Variable context threaded through the run"
    )
    steps: List[StepExecution] = Field(
        default_factory=list, description="Attempted steps, in execution order"
    )
    started_at: datetime = Field(..., description="Timestamp when the run started")
    completed_at: Optional[datetime] = Field(
        default=None, description="Timestamp when the run reached a terminal status"
    )

    @property
    def produced_artifact_ids(self) -> List[str]:
        """Artifact identifiers produced by completed steps, in step order."""
        return [
            step.dtu_id
            for step in self.steps
            if step.status == StepStatus.COMPLETED and step.dtu_id
        ]

    @property
    def failed_step(self) -> Optional[StepExecution]:
        """The first attempted step that did not complete, if any."""
        return next((step for step in self.steps if not step.is_success()), None)

    @property
    def is_finished(self) -> bool:
        """Whether the run has reached a terminal status."""
        return self.status != ExecutionStatus.RUNNING

    def is_success(self) -> bool:
        """Check if every attempted step completed."""
        return self.status == ExecutionStatus.COMPLETED
