"""Input/output contracts for lens actions.

This module defines the contract between the pipeline executor and the
action runner that actually performs a step. The executor knows nothing
about what an action does; it only passes resolved inputs in and reads an
ActionResult back.

According to the contract:
- A result with ``ok=False`` is a failed step
- Any other result is a successful step
- A runner that raises is treated exactly like ``ok=False``
- ``dtu_id`` names the artifact the action produced, if any
- ``artifact`` is the reusable output stored under the step's output key
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from lenschain.core.execution import Identity


class ActionContext(BaseModel):
    """Context passed to the action runner alongside the resolved inputs.

    Attributes:
        identity: Requester identity.
        pipeline_id: Pipeline being executed.
        execution_id: Execution the step belongs to.
        step_order: Declared order of the step.
        cancellation: Cancellation token for the run, if any. Runners may
            poll it to abandon work early.
        deadline_seconds: Deadline applied to this invocation, if any.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    identity: Identity = Field(default_factory=Identity, description="Requester identity")
    pipeline_id: str = Field(..., description="Pipeline being executed")
    execution_id: str = Field(..., description="Execution the step belongs to")
    step_order: int = Field(..., description="Declared order of the step")
    cancellation: Optional[Any] = Field(
        default=None, exclude=True, description="Cancellation token for the run"
    )
    deadline_seconds: Optional[float] = Field(
        default=None, description="Deadline applied to this invocation"
    )


class ActionResult(BaseModel):
    """Output contract for a lens action.

    Extra fields returned by a runner are kept, so a result without an
    artifact can still be stored whole under a step's output key.
    """

    model_config = ConfigDict(extra="allow")

    ok: bool = Field(default=True, description="Whether the action succeeded")
    dtu_id: Optional[str] = Field(
        default=None, description="Identifier of the artifact produced by the action"
    )
    artifact: Optional[Any] = Field(
        default=None, description="Reusable output of the action"
    )
    error: Optional[str] = Field(default=None, description="Error message if the action failed")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Additional metadata about the invocation"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Timestamp when the result was produced",
    )

    @property
    def output(self) -> Any:
        """The value stored under a step's output key.

        The artifact when the action produced one, otherwise the whole
        result payload.
        """
        if self.artifact is not None:
            return self.artifact
        return self.model_dump(exclude={"timestamp"})


@runtime_checkable
class ActionRunner(Protocol):
    """Contract for the collaborator that performs lens actions."""

    async def invoke(
        self,
        lens: str,
        action: str,
        inputs: Dict[str, Any],
        context: ActionContext,
    ) -> Any:
        """Perform ``action`` on ``lens`` with the resolved inputs.

        Returns:
            An ActionResult, or a mapping with the same fields.
        """
        ...


def create_action_result(
    ok: bool = True,
    dtu_id: Optional[str] = None,
    artifact: Optional[Any] = None,
    error: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ActionResult:
    """Create an ActionResult.

    Args:
        ok: Whether the action succeeded.
        dtu_id: Identifier of the produced artifact.
        artifact: Reusable output of the action.
        error: Error message (if failed).
        metadata: Additional metadata about the invocation.

    Returns:
        ActionResult object
    """
    return ActionResult(
        ok=ok,
        dtu_id=dtu_id,
        artifact=artifact,
        error=error,
        metadata=metadata or {},
    )


def coerce_action_result(raw: Any) -> ActionResult:
    """Normalize whatever a runner returned into an ActionResult.

    Mappings are read field by field, accepting the camelCase ``dtuId``
    spelling as well. Only an explicit ``ok`` of False marks a failure;
    any other value, including None, is a success whose payload is the
    returned value.
    """
    if isinstance(raw, ActionResult):
        return raw

    if isinstance(raw, dict) and any(
        key in raw for key in ("ok", "dtu_id", "dtuId", "artifact", "error")
    ):
        data = {key: value for key, value in raw.items() if key not in ("dtuId", "timestamp")}
        data["ok"] = raw.get("ok") is not False
        dtu_id = raw.get("dtu_id", raw.get("dtuId"))
        data["dtu_id"] = str(dtu_id) if dtu_id is not None else None
        data["metadata"] = raw.get("metadata") or {}
        if data.get("error") is not None:
            data["error"] = str(data["error"])
        return ActionResult.model_validate(data)

    return create_action_result(ok=True, artifact=raw)
