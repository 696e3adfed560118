"""Collaborator bundle injected into the pipeline executor.

Everything the executor touches outside its own state comes through this
bundle: the action runner, the event emitter, the artifact and execution
stores, and the identifier and clock providers. Tests swap in fakes and
deterministic providers; production wires the in-memory defaults or real
services.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable

from lenschain.contracts.action_io import ActionRunner
from lenschain.runtime.actions import LensActionRunner
from lenschain.runtime.events import EventEmitter, InMemoryEventBus
from lenschain.runtime.stores import (
    ArtifactStore,
    ExecutionStore,
    InMemoryArtifactStore,
    InMemoryExecutionStore,
)


def new_id() -> str:
    """Default identifier provider."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


@dataclass
class Collaborators:
    """External collaborators used by a pipeline run.

    Attributes:
        action_runner: Performs each step's lens action.
        events: Receives lifecycle events.
        artifacts: Holds artifact records to annotate with lineage.
        executions: Keeps execution records for inspection.
        id_factory: Produces unique execution identifiers.
        clock: Produces the current timestamp.
    """

    action_runner: ActionRunner = field(default_factory=LensActionRunner)
    events: EventEmitter = field(default_factory=InMemoryEventBus)
    artifacts: ArtifactStore = field(default_factory=InMemoryArtifactStore)
    executions: ExecutionStore = field(default_factory=InMemoryExecutionStore)
    id_factory: Callable[[], str] = new_id
    clock: Callable[[], datetime] = utc_now

    def with_overrides(self, **overrides: Any) -> "Collaborators":
        """Return a copy with some collaborators replaced."""
        return replace(self, **overrides)
