"""Pipeline service.

Ties the registry and the executor together for callers that start from
free text: detect a pipeline, announce the match, enforce consent, run.
The HTTP API talks to a single process-wide service obtained through
``get_pipeline_service``.
"""

import importlib
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from lenschain.config import Settings, settings
from lenschain.contracts.action_io import ActionRunner
from lenschain.core.exceptions import ConsentRequiredError
from lenschain.core.execution import Execution, ExecutionStatus, Identity
from lenschain.pipelines.base import PipelineDefinition, PipelineMatch
from lenschain.pipelines.catalog import build_registry
from lenschain.pipelines.registry import PipelineRegistry
from lenschain.runtime.actions import LensActionRunner
from lenschain.runtime.cancellation import CancellationToken
from lenschain.runtime.collaborators import Collaborators
from lenschain.runtime.events import InMemoryEventBus, PipelineTriggeredEvent
from lenschain.runtime.executor import PipelineExecutor

logger = logging.getLogger(__name__)

ConsentChecker = Callable[[PipelineDefinition, Identity], bool]


class PipelineService:
    """Entry point for detecting and running pipelines.

    Args:
        registry: Registry holding the pipelines.
        executor: Executor for runs. If None, one is created over
            ``registry`` and ``collaborators``.
        collaborators: Collaborators shared by the executor and the
            service's own events. If None, the executor's are used.
        consent_checker: Decides whether an identity has consented to a
            pipeline. Without one, consent must be passed explicitly to
            ``trigger``.
    """

    def __init__(
        self,
        registry: PipelineRegistry,
        executor: Optional[PipelineExecutor] = None,
        collaborators: Optional[Collaborators] = None,
        consent_checker: Optional[ConsentChecker] = None,
    ):
        self.registry = registry
        self.executor = executor or PipelineExecutor(registry, collaborators=collaborators)
        self.collaborators = collaborators or self.executor.collaborators
        self.consent_checker = consent_checker

    def detect(self, text: str) -> Optional[PipelineMatch]:
        """Match text against the registered pipelines."""
        return self.registry.detect(text)

    def has_consent(
        self,
        pipeline: PipelineDefinition,
        identity: Identity,
        consent_granted: bool = False,
    ) -> bool:
        """Whether a run of ``pipeline`` for ``identity`` may start."""
        if not pipeline.consent_required or consent_granted:
            return True
        if self.consent_checker is None:
            return False
        try:
            return bool(self.consent_checker(pipeline, identity))
        except Exception as e:
            logger.error(
                f"Consent check failed for pipeline {pipeline.id}: {e}", exc_info=True
            )
            return False

    async def trigger(
        self,
        text: str,
        identity: Optional[Union[Identity, Dict[str, Any]]] = None,
        consent_granted: bool = False,
        cancellation: Optional[CancellationToken] = None,
    ) -> Optional[Execution]:
        """Detect a pipeline in ``text`` and run it.

        Args:
            text: Free text, e.g. a chat utterance.
            identity: Requester identity.
            consent_granted: Whether the requester has explicitly consented
                to the matched pipeline.
            cancellation: Optional token to cancel the run.

        Returns:
            The Execution record, or None if no pipeline matched.

        Raises:
            ConsentRequiredError: If the matched pipeline requires consent
                and none was given.
        """
        identity = _as_identity(identity)
        match = self.detect(text)
        if match is None:
            logger.debug("No pipeline matched the given text")
            return None

        pipeline = match.pipeline
        logger.info(
            f"Text matched pipeline {pipeline.id} with variables {list(match.variables.keys())}"
        )
        try:
            self.collaborators.events.publish(
                PipelineTriggeredEvent(
                    pipeline_id=pipeline.id,
                    user_id=identity.user_id,
                    session_id=identity.session_id,
                    variables=dict(match.variables),
                    consent_required=pipeline.consent_required,
                    timestamp=self.collaborators.clock(),
                )
            )
        except Exception as e:
            logger.warning(f"Failed to publish pipeline:triggered: {e}")

        if not self.has_consent(pipeline, identity, consent_granted):
            logger.warning(
                f"Pipeline {pipeline.id} requires consent; not started for user {identity.user_id}"
            )
            raise ConsentRequiredError(pipeline.id, identity.user_id)

        return await self.executor.run(
            pipeline.id,
            initial_variables=match.variables,
            identity=identity,
            collaborators=self.collaborators,
            cancellation=cancellation,
        )

    async def run(
        self,
        pipeline_id: str,
        variables: Optional[Mapping[str, Any]] = None,
        identity: Optional[Union[Identity, Dict[str, Any]]] = None,
        consent_granted: bool = False,
        cancellation: Optional[CancellationToken] = None,
    ) -> Execution:
        """Run a pipeline by identifier, skipping detection.

        Raises:
            PipelineNotFoundError: If the pipeline is not registered.
            ConsentRequiredError: If the pipeline requires consent and none
                was given.
        """
        identity = _as_identity(identity)
        pipeline = self.registry.require(pipeline_id)
        if not self.has_consent(pipeline, identity, consent_granted):
            raise ConsentRequiredError(pipeline.id, identity.user_id)

        return await self.executor.run(
            pipeline.id,
            initial_variables=variables,
            identity=identity,
            collaborators=self.collaborators,
            cancellation=cancellation,
        )

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Get an execution record by identifier."""
        return self.collaborators.executions.get(execution_id)

    def list_executions(
        self,
        pipeline_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> List[Execution]:
        """List execution records, optionally filtered."""
        return self.collaborators.executions.list(
            pipeline_id=pipeline_id, user_id=user_id, status=status
        )


def _as_identity(identity: Optional[Union[Identity, Dict[str, Any]]]) -> Identity:
    if isinstance(identity, Identity):
        return identity
    return Identity.model_validate(identity or {})


def load_action_runner(path: str) -> ActionRunner:
    """Load an action runner from a 'module:attribute' path.

    The attribute may be a runner instance (anything with an ``invoke``
    method) or a class or zero-argument factory returning one.

    Raises:
        ValueError: If the path is malformed or does not yield a runner.
        ImportError: If the module cannot be imported.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Action runner path must be 'module:attribute', got: {path!r}")

    module = importlib.import_module(module_name)
    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise ValueError(f"Module {module_name} has no attribute {attribute}") from e

    if isinstance(target, type) or not hasattr(target, "invoke"):
        if not callable(target):
            raise ValueError(f"Action runner {path} is neither a runner nor a factory")
        target = target()

    if not callable(getattr(target, "invoke", None)):
        raise ValueError(f"Action runner {path} did not produce an object with invoke()")
    return target


def build_service(
    config: Optional[Settings] = None,
    action_runner: Optional[ActionRunner] = None,
) -> PipelineService:
    """Build a service from settings.

    Loads the pipeline catalog, wires the in-memory collaborators and
    creates the executor with the configured timeout and reference policy.

    Args:
        config: Settings to build from. If None, uses the global settings.
        action_runner: Runner performing the lens actions. If None, the
            runner named by ``config.action_runner`` is loaded, falling
            back to an empty LensActionRunner.
    """
    config = config or settings
    registry = build_registry(
        directory=config.pipeline_catalog_dir,
        load_builtin=config.load_builtin_pipelines,
    )
    if action_runner is None:
        if config.action_runner:
            action_runner = load_action_runner(config.action_runner)
            logger.info(f"Loaded action runner from {config.action_runner}")
        else:
            action_runner = LensActionRunner()
            logger.warning(
                "No action runner configured; lens actions will fail until handlers "
                "are registered"
            )
    collaborators = Collaborators(
        action_runner=action_runner,
        events=InMemoryEventBus(history_size=config.event_history_size),
    )
    executor = PipelineExecutor(
        registry,
        collaborators=collaborators,
        step_timeout=config.step_timeout_seconds,
        unresolved_reference_policy=config.unresolved_reference_policy,
        enable_tracing=config.enable_tracing,
    )
    logger.info(
        f"Pipeline service ready with {len(registry)} pipelines: {registry.list_pipelines()}"
    )
    return PipelineService(registry, executor=executor, collaborators=collaborators)


# Default service instance
_default_service: Optional[PipelineService] = None


def get_pipeline_service() -> PipelineService:
    """Get the default service instance, building it from settings on first use."""
    global _default_service
    if _default_service is None:
        _default_service = build_service()
    return _default_service


def set_pipeline_service(service: Optional[PipelineService]) -> None:
    """Set (or clear, with None) the default service instance."""
    global _default_service
    _default_service = service
