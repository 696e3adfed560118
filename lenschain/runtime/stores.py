"""Artifact and execution stores.

The executor uses two keyed stores:

- the artifact store, to attach lineage metadata to artifacts that lens
  actions have already created (the executor never creates artifacts);
- the execution store, to keep execution records for later inspection.

Both are keyed by identifiers unique per artifact or run. The in-memory
implementations guard their maps with a lock so concurrent runs inserting
under distinct keys cannot corrupt each other.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from lenschain.core.execution import Execution, ExecutionStatus

logger = logging.getLogger(__name__)

# Lineage metadata keys attached to produced artifacts
LINEAGE_PIPELINE_ID = "pipelineId"
LINEAGE_PIPELINE_STEP = "pipelineStep"
LINEAGE_PIPELINE_EXECUTION = "pipelineExecution"


class ArtifactStore(Protocol):
    """Contract for the artifact store collaborator."""

    def get(self, dtu_id: str) -> Optional[Dict[str, Any]]:
        """Get an artifact record by identifier."""
        ...

    def annotate(self, dtu_id: str, metadata: Dict[str, Any]) -> bool:
        """Merge metadata into an existing artifact record.

        Returns:
            True if the artifact exists and was updated, False otherwise.
        """
        ...


class ExecutionStore(Protocol):
    """Contract for the execution store collaborator."""

    def save(self, execution: Execution) -> None:
        """Insert or replace an execution record."""
        ...

    def get(self, execution_id: str) -> Optional[Execution]:
        """Get an execution record by identifier."""
        ...

    def list(
        self,
        pipeline_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> List[Execution]:
        """List execution records, optionally filtered."""
        ...


class InMemoryArtifactStore:
    """Dictionary-backed artifact store.

    Records are plain dictionaries; lineage metadata is merged into each
    record's ``meta`` mapping.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._artifacts: Dict[str, Dict[str, Any]] = {}

    def put(self, dtu_id: str, record: Dict[str, Any]) -> None:
        """Insert or replace an artifact record."""
        with self._lock:
            self._artifacts[dtu_id] = dict(record)

    def get(self, dtu_id: str) -> Optional[Dict[str, Any]]:
        """Get a copy of an artifact record by identifier."""
        with self._lock:
            record = self._artifacts.get(dtu_id)
            return copy.deepcopy(record) if record is not None else None

    def annotate(self, dtu_id: str, metadata: Dict[str, Any]) -> bool:
        """Merge metadata into an artifact record's ``meta`` mapping."""
        with self._lock:
            record = self._artifacts.get(dtu_id)
            if record is None:
                return False
            meta = dict(record.get("meta") or {})
            meta.update(metadata)
            record["meta"] = meta
            return True

    def __contains__(self, dtu_id: object) -> bool:
        with self._lock:
            return dtu_id in self._artifacts

    def __len__(self) -> int:
        with self._lock:
            return len(self._artifacts)


def _snapshot(execution: Execution) -> Execution:
    """Copy an execution record for storage or handout.

    Step records are always deep-copied. Variables hold raw action
    artifacts, which may not support deepcopy (clients, locks, generators);
    those fall back to a shallow copy of the variables mapping.
    """
    try:
        return execution.model_copy(deep=True)
    except Exception as e:
        logger.debug(
            f"Execution {execution.id} variables cannot be deep-copied ({e}); "
            "storing a shallow copy"
        )
    snapshot = execution.model_copy()
    snapshot.identity = execution.identity.model_copy()
    snapshot.steps = [step.model_copy(deep=True) for step in execution.steps]
    snapshot.variables = dict(execution.variables)
    return snapshot


class InMemoryExecutionStore:
    """Dictionary-backed execution store.

    ``get`` and ``list`` return copies, so callers inspecting a running
    execution cannot mutate the executor's record. Artifacts that cannot be
    deep-copied are shared rather than copied.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._executions: Dict[str, Execution] = {}

    def save(self, execution: Execution) -> None:
        """Insert or replace an execution record."""
        snapshot = _snapshot(execution)
        with self._lock:
            self._executions[execution.id] = snapshot

    def get(self, execution_id: str) -> Optional[Execution]:
        """Get a copy of an execution record by identifier."""
        with self._lock:
            execution = self._executions.get(execution_id)
        return _snapshot(execution) if execution is not None else None

    def list(
        self,
        pipeline_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> List[Execution]:
        """List execution records in start order, optionally filtered."""
        with self._lock:
            executions = list(self._executions.values())

        if pipeline_id is not None:
            executions = [e for e in executions if e.pipeline_id == pipeline_id]
        if user_id is not None:
            executions = [e for e in executions if e.identity.user_id == user_id]
        if status is not None:
            executions = [e for e in executions if e.status == ExecutionStatus(status)]

        executions.sort(key=lambda e: e.started_at)
        return [_snapshot(e) for e in executions]

    def __contains__(self, execution_id: object) -> bool:
        with self._lock:
            return execution_id in self._executions

    def __len__(self) -> int:
        with self._lock:
            return len(self._executions)
