"""Pipeline executor.

The executor drives a registered pipeline's steps to a terminal status:

1. create the Execution record and emit ``pipeline:started``;
2. for each step, in order: resolve its inputs against the current
   variable context, invoke the action runner, record the outcome, store
   the step output, tag the produced artifact with lineage metadata;
3. stop at the first step that does not complete;
4. set the terminal status and emit ``pipeline:completed``.

Only an unknown pipeline identifier raises out of ``run``. Mapping errors,
action failures, timeouts and cancellations are captured in the
Execution record, whose status tells the caller whether the whole chain
completed.
"""

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Union

from lenschain.config import settings
from lenschain.contracts.action_io import ActionContext, ActionResult, ActionRunner, coerce_action_result
from lenschain.core.exceptions import MappingResolutionError
from lenschain.core.execution import (
    Execution,
    ExecutionStatus,
    Identity,
    StepExecution,
    StepStatus,
)
from lenschain.pipelines.base import PipelineDefinition, Step
from lenschain.pipelines.mapping import UnresolvedReferencePolicy, resolve_input_mapping
from lenschain.pipelines.registry import PipelineRegistry
from lenschain.runtime.cancellation import CancellationToken
from lenschain.runtime.collaborators import Collaborators
from lenschain.runtime.events import (
    PipelineCompletedEvent,
    PipelineEvent,
    PipelineStartedEvent,
    StepCompletedEvent,
    StepStartedEvent,
)
from lenschain.runtime.stores import (
    LINEAGE_PIPELINE_EXECUTION,
    LINEAGE_PIPELINE_ID,
    LINEAGE_PIPELINE_STEP,
)
from lenschain.runtime.tracing import Tracer, get_tracer

logger = logging.getLogger(__name__)


class _StepTimedOut(Exception):
    """The action runner did not answer before the step deadline."""


class _StepCancelled(Exception):
    """The run's cancellation token fired while the step was running."""


class PipelineExecutor:
    """Executor for pipeline runs.

    The executor is responsible for:
    - Sequencing steps and short-circuiting on the first failure
    - Resolving each step's inputs from the variable context
    - Enforcing per-step deadlines and cancellation
    - Recording outcomes, lineage and lifecycle events

    It does NOT handle:
    - Matching text to pipelines (see PipelineRegistry.detect)
    - Consent enforcement
    - What a lens action actually does
    """

    def __init__(
        self,
        registry: PipelineRegistry,
        collaborators: Optional[Collaborators] = None,
        step_timeout: Optional[float] = None,
        unresolved_reference_policy: Optional[Union[UnresolvedReferencePolicy, str]] = None,
        enable_tracing: bool = True,
        tracer: Optional[Tracer] = None,
    ):
        """Initialize the executor.

        Args:
            registry: Registry the pipelines are looked up in.
            collaborators: Default collaborators for runs. If None, the
                in-memory defaults are used.
            step_timeout: Default deadline in seconds for one step. If None,
                uses settings.step_timeout_seconds; None there means no
                deadline. A step's own ``timeout_seconds`` takes precedence.
            unresolved_reference_policy: How unresolved ``$variable``
                references are handled. If None, uses
                settings.unresolved_reference_policy.
            enable_tracing: Whether runs are wrapped in tracing spans.
            tracer: Tracer to use. If None, the default tracer is used.
        """
        self.registry = registry
        self.collaborators = collaborators or Collaborators()
        self.step_timeout = (
            step_timeout if step_timeout is not None else settings.step_timeout_seconds
        )
        self.unresolved_reference_policy = UnresolvedReferencePolicy(
            unresolved_reference_policy or settings.unresolved_reference_policy
        )
        self.enable_tracing = enable_tracing
        self._tracer = tracer

    @property
    def tracer(self) -> Tracer:
        """The tracer used for runs."""
        return self._tracer or get_tracer()

    async def run(
        self,
        pipeline_id: str,
        initial_variables: Optional[Mapping[str, Any]] = None,
        identity: Optional[Union[Identity, Dict[str, Any]]] = None,
        collaborators: Optional[Collaborators] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> Execution:
        """Run a registered pipeline to a terminal status.

        Args:
            pipeline_id: Identifier of a registered pipeline.
            initial_variables: Variables seeding the context, usually the
                ones extracted by the trigger. The mapping is copied.
            identity: Requester identity, used for tagging and events.
            collaborators: Collaborators for this run. If None, the
                executor's defaults are used.
            cancellation: Optional token; cancelling it stops the run at
                the current step.

        Returns:
            The Execution record, with status COMPLETED or PARTIAL.

        Raises:
            PipelineNotFoundError: If the pipeline is not registered.
            asyncio.CancelledError: If the task running the pipeline is
                cancelled. The record is finalized as PARTIAL first.
        """
        pipeline = self.registry.require(pipeline_id)
        collab = collaborators or self.collaborators
        if not isinstance(identity, Identity):
            identity = Identity.model_validate(identity or {})

        execution = Execution(
            id=collab.id_factory(),
            pipeline_id=pipeline.id,
            identity=identity,
            status=ExecutionStatus.RUNNING,
            variables=dict(initial_variables or {}),
            started_at=collab.clock(),
        )
        self._persist(collab, execution)

        logger.info(
            f"Starting pipeline {pipeline.id} (execution {execution.id}, "
            f"{len(pipeline.steps)} steps, user {identity.user_id})"
        )
        self._emit(
            collab,
            PipelineStartedEvent(
                pipeline_id=pipeline.id,
                execution_id=execution.id,
                user_id=identity.user_id,
                session_id=identity.session_id,
                step_count=len(pipeline.steps),
                timestamp=execution.started_at,
            ),
        )

        interrupted = False
        span_name = f"pipeline.{pipeline.id}"
        span_metadata = {"pipeline_id": pipeline.id, "execution_id": execution.id}
        tracing = self.enable_tracing

        async with self._span(span_name, span_metadata, tracing):
            for step in pipeline.steps:
                record = StepExecution(
                    order=step.order,
                    lens=step.lens,
                    action=step.action,
                    status=StepStatus.RUNNING,
                    started_at=collab.clock(),
                )
                self._emit(
                    collab,
                    StepStartedEvent(
                        pipeline_id=pipeline.id,
                        execution_id=execution.id,
                        user_id=identity.user_id,
                        session_id=identity.session_id,
                        step_order=step.order,
                        lens=step.lens,
                        action=step.action,
                        timestamp=record.started_at,
                    ),
                )

                try:
                    await self._run_step(pipeline, step, record, execution, collab, cancellation)
                except asyncio.CancelledError:
                    logger.warning(
                        f"Pipeline {pipeline.id} (execution {execution.id}) was cancelled "
                        f"during step {step.order} ({step.label})"
                    )
                    self._finish_step(
                        record, collab, StepStatus.CANCELLED, "Pipeline run was cancelled"
                    )
                    interrupted = True

                execution.steps.append(record)
                self._persist(collab, execution)
                self._emit(
                    collab,
                    StepCompletedEvent(
                        pipeline_id=pipeline.id,
                        execution_id=execution.id,
                        user_id=identity.user_id,
                        session_id=identity.session_id,
                        step_order=step.order,
                        lens=step.lens,
                        action=step.action,
                        status=record.status,
                        dtu_id=record.dtu_id,
                        error=record.error,
                        timestamp=record.completed_at or collab.clock(),
                    ),
                )

                if interrupted or not record.is_success():
                    skipped = len(pipeline.steps) - len(execution.steps)
                    logger.info(
                        f"Pipeline {pipeline.id} stopped at step {step.order} "
                        f"({record.status.value}); {skipped} remaining steps skipped"
                    )
                    break

        self._finish_execution(execution, collab)
        if interrupted:
            raise asyncio.CancelledError()
        return execution

    async def _run_step(
        self,
        pipeline: PipelineDefinition,
        step: Step,
        record: StepExecution,
        execution: Execution,
        collab: Collaborators,
        cancellation: Optional[CancellationToken],
    ) -> None:
        """Run one step and fill in its record.

        Args:
            pipeline: The pipeline being executed.
            step: The step to run.
            record: The step's record, already in RUNNING state.
            execution: The execution; its variables are extended on success.
            collab: Collaborators for the run.
            cancellation: Optional cancellation token.
        """
        if cancellation is not None and cancellation.cancelled:
            self._finish_step(
                record, collab, StepStatus.CANCELLED, f"Cancelled: {cancellation.reason}"
            )
            return

        try:
            inputs = resolve_input_mapping(
                step.input_mapping, execution.variables, self.unresolved_reference_policy
            )
        except MappingResolutionError as e:
            logger.warning(f"Step {step.order} ({step.label}) input resolution failed: {e}")
            self._finish_step(record, collab, StepStatus.FAILED, str(e))
            return

        deadline = step.timeout_seconds if step.timeout_seconds is not None else self.step_timeout
        context = ActionContext(
            identity=execution.identity,
            pipeline_id=pipeline.id,
            execution_id=execution.id,
            step_order=step.order,
            cancellation=cancellation,
            deadline_seconds=deadline,
        )

        step_metadata = {
            "pipeline_id": pipeline.id,
            "execution_id": execution.id,
            "step_order": step.order,
            "lens": step.lens,
            "action": step.action,
            "timeout": deadline,
        }

        async with self._span(f"step.{step.label}", step_metadata, self.enable_tracing) as span:
            try:
                result = await self._invoke(
                    collab.action_runner, step, inputs, context, deadline, cancellation
                )
            except _StepTimedOut:
                error_msg = f"Step {step.order} ({step.label}) timed out after {deadline}s"
                logger.error(error_msg)
                self._trace_event("step.timeout", step_metadata)
                self._finish_step(record, collab, StepStatus.TIMEOUT, error_msg)
                return
            except _StepCancelled:
                reason = cancellation.reason if cancellation is not None else None
                error_msg = f"Step {step.order} ({step.label}) was cancelled: {reason}"
                logger.warning(error_msg)
                self._trace_event("step.cancelled", step_metadata)
                self._finish_step(record, collab, StepStatus.CANCELLED, error_msg)
                return
            except Exception as e:
                error_msg = str(e) or type(e).__name__
                logger.error(
                    f"Step {step.order} ({step.label}) raised: {error_msg}", exc_info=True
                )
                self._trace_event(
                    "step.error", {**step_metadata, "error": error_msg, "error_type": type(e).__name__}
                )
                self._finish_step(record, collab, StepStatus.FAILED, error_msg)
                return

            if span is not None and hasattr(span, "update"):
                try:
                    span.update(output={"ok": result.ok, "dtu_id": result.dtu_id})
                except Exception as e:
                    logger.debug(f"Failed to update span output: {e}")

        if not result.ok:
            error_msg = result.error or f"Action {step.label} reported failure"
            logger.warning(f"Step {step.order} ({step.label}) failed: {error_msg}")
            self._finish_step(record, collab, StepStatus.FAILED, error_msg)
            return

        record.dtu_id = result.dtu_id
        self._finish_step(record, collab, StepStatus.COMPLETED)

        if step.output_key:
            if step.output_key in execution.variables:
                logger.warning(
                    f"Step {step.order} ({step.label}) output key '{step.output_key}' "
                    "already set; keeping the earlier value"
                )
            else:
                execution.variables[step.output_key] = result.output

        if result.dtu_id:
            self._tag_lineage(result.dtu_id, pipeline, step, execution, collab)

    async def _invoke(
        self,
        runner: ActionRunner,
        step: Step,
        inputs: Dict[str, Any],
        context: ActionContext,
        deadline: Optional[float],
        cancellation: Optional[CancellationToken],
    ) -> ActionResult:
        """Call the action runner, bounded by the deadline and cancellation.

        Raises:
            _StepTimedOut: If the deadline passed first.
            _StepCancelled: If the cancellation token fired first.
            RuntimeError: If the runner itself raised CancelledError.
            Exception: Whatever else the runner raised.
        """
        action_task = asyncio.ensure_future(
            runner.invoke(step.lens, step.action, inputs, context)
        )
        waiters = {action_task}
        cancel_task = None
        if cancellation is not None:
            cancel_task = asyncio.ensure_future(cancellation.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=deadline, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            action_task.cancel()
            raise
        finally:
            if cancel_task is not None:
                cancel_task.cancel()
                await asyncio.gather(cancel_task, return_exceptions=True)

        if action_task in done:
            # wait() returned normally, so this task was not cancelled from outside
            if action_task.cancelled():
                raise RuntimeError(f"Action {step.label} raised CancelledError")
            return coerce_action_result(action_task.result())

        action_task.cancel()
        await asyncio.gather(action_task, return_exceptions=True)
        if cancel_task is not None and cancel_task in done:
            raise _StepCancelled()
        raise _StepTimedOut()

    def _finish_step(
        self,
        record: StepExecution,
        collab: Collaborators,
        status: StepStatus,
        error: Optional[str] = None,
    ) -> None:
        """Move a step record to its terminal status."""
        record.status = status
        record.error = error
        record.completed_at = collab.clock()

    def _finish_execution(self, execution: Execution, collab: Collaborators) -> None:
        """Set the terminal status, persist and announce the execution."""
        all_completed = all(step.is_success() for step in execution.steps)
        execution.status = ExecutionStatus.COMPLETED if all_completed else ExecutionStatus.PARTIAL
        execution.completed_at = collab.clock()
        self._persist(collab, execution)

        logger.info(
            f"Pipeline {execution.pipeline_id} (execution {execution.id}) finished: "
            f"{execution.status.value}, {len(execution.steps)} steps attempted"
        )
        self._emit(
            collab,
            PipelineCompletedEvent(
                pipeline_id=execution.pipeline_id,
                execution_id=execution.id,
                user_id=execution.identity.user_id,
                session_id=execution.identity.session_id,
                status=execution.status,
                dtu_ids=execution.produced_artifact_ids,
                timestamp=execution.completed_at,
            ),
        )

    def _tag_lineage(
        self,
        dtu_id: str,
        pipeline: PipelineDefinition,
        step: Step,
        execution: Execution,
        collab: Collaborators,
    ) -> None:
        """Attach pipeline lineage metadata to a produced artifact."""
        lineage = {
            LINEAGE_PIPELINE_ID: pipeline.id,
            LINEAGE_PIPELINE_STEP: step.order,
            LINEAGE_PIPELINE_EXECUTION: execution.id,
        }
        try:
            if not collab.artifacts.annotate(dtu_id, lineage):
                logger.warning(
                    f"Artifact {dtu_id} from step {step.order} ({step.label}) not found; "
                    "lineage not recorded"
                )
        except Exception as e:
            logger.warning(f"Failed to record lineage for artifact {dtu_id}: {e}", exc_info=True)

    def _persist(self, collab: Collaborators, execution: Execution) -> None:
        """Save the execution record without letting the store fail the run."""
        try:
            collab.executions.save(execution)
        except Exception as e:
            logger.warning(
                f"Failed to save execution {execution.id} of pipeline "
                f"{execution.pipeline_id}: {e}",
                exc_info=True,
            )

    def _emit(self, collab: Collaborators, event: PipelineEvent) -> None:
        """Publish an event without letting the emitter fail the run."""
        try:
            collab.events.publish(event)
        except Exception as e:
            logger.warning(f"Failed to publish {event.name.value}: {e}")

    def _span(self, name: str, metadata: Dict[str, Any], enabled: bool):
        """Open a tracing span, or a no-op span when tracing is disabled."""
        if not enabled:
            return _null_span()
        return self.tracer.async_span(name=name, metadata=metadata)

    def _trace_event(self, name: str, metadata: Dict[str, Any]) -> None:
        if self.enable_tracing:
            self.tracer.log_event(name=name, metadata=metadata)


class _NullSpan:
    async def __aenter__(self) -> None:
        return None

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


def _null_span() -> _NullSpan:
    return _NullSpan()
