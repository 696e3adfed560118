"""Pipeline router for pipeline-oriented API endpoints.

This router implements the pipeline API surface:
- GET /pipelines - List registered pipelines
- GET /pipelines/{pipeline_id} - Describe one pipeline
- POST /pipelines/detect - Match text against pipeline triggers
- POST /pipelines/trigger - Detect a pipeline in text and run it
- POST /pipelines/{pipeline_id}/run - Run a pipeline by identifier
- GET /executions - List execution records
- GET /executions/{execution_id} - Get one execution record

Unknown pipelines surface as 404 and missing consent as 403 through the
application's error handlers.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from lenschain.core.execution import Execution, ExecutionStatus, Identity
from lenschain.service import PipelineService, get_pipeline_service

logger = logging.getLogger(__name__)

router = APIRouter()


# Request/Response Models
class StepSummary(BaseModel):
    """Summary of one pipeline step."""

    order: int = Field(..., description="Declared order of the step")
    lens: str = Field(..., description="Lens the action belongs to")
    action: str = Field(..., description="Action the step invokes")
    output_key: Optional[str] = Field(
        default=None, description="Variable the step output is stored under"
    )


class PipelineSummaryResponse(BaseModel):
    """Response model describing a registered pipeline."""

    id: str = Field(..., description="Pipeline identifier")
    description: str = Field(default="", description="Human-readable description")
    consent_required: bool = Field(..., description="Whether a run requires consent")
    trigger_type: str = Field(..., description="Trigger type")
    patterns: List[str] = Field(..., description="Trigger patterns, tried in order")
    extract_variable: Optional[str] = Field(
        default=None, description="Variable bound to the first capture group"
    )
    steps: List[StepSummary] = Field(..., description="Steps in execution order")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Extra metadata")


class DetectRequest(BaseModel):
    """Request model for pipeline detection."""

    text: str = Field(..., description="Free text to match, e.g. a chat message")


class DetectResponse(BaseModel):
    """Response model for pipeline detection."""

    matched: bool = Field(..., description="Whether any pipeline matched")
    pipeline_id: Optional[str] = Field(default=None, description="Matched pipeline")
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Variables extracted by the trigger"
    )
    consent_required: bool = Field(
        default=False, description="Whether the matched pipeline requires consent"
    )
    pattern: Optional[str] = Field(default=None, description="Pattern that matched")


class TriggerRequest(BaseModel):
    """Request model for detecting and running a pipeline."""

    text: str = Field(..., description="Free text to match, e.g. a chat message")
    user_id: Optional[str] = Field(default=None, description="Optional user identifier")
    session_id: Optional[str] = Field(default=None, description="Optional session identifier")
    consent_granted: bool = Field(
        default=False, description="Whether the user consented to the matched pipeline"
    )


class TriggerResponse(BaseModel):
    """Response model for a trigger request."""

    matched: bool = Field(..., description="Whether any pipeline matched")
    execution: Optional[Execution] = Field(
        default=None, description="Execution record if a pipeline ran"
    )


class RunPipelineRequest(BaseModel):
    """Request model for running a pipeline by identifier."""

    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Initial variables for the run"
    )
    user_id: Optional[str] = Field(default=None, description="Optional user identifier")
    session_id: Optional[str] = Field(default=None, description="Optional session identifier")
    consent_granted: bool = Field(
        default=False, description="Whether the user consented to the pipeline"
    )


@router.get("/pipelines", response_model=List[PipelineSummaryResponse])
async def list_pipelines(
    service: PipelineService = Depends(get_pipeline_service),
) -> List[PipelineSummaryResponse]:
    """List registered pipelines in detection priority order.

    Args:
        service: Pipeline service (from dependency).

    Returns:
        List of pipeline summaries.
    """
    return [
        PipelineSummaryResponse(**service.registry.get_metadata(pipeline_id))
        for pipeline_id in service.registry.list_pipelines()
    ]


@router.get("/pipelines/{pipeline_id}", response_model=PipelineSummaryResponse)
async def get_pipeline(
    pipeline_id: str,
    service: PipelineService = Depends(get_pipeline_service),
) -> PipelineSummaryResponse:
    """Describe one registered pipeline.

    Raises:
        PipelineNotFoundError: If the pipeline is not registered.
    """
    service.registry.require(pipeline_id)
    return PipelineSummaryResponse(**service.registry.get_metadata(pipeline_id))


@router.post("/pipelines/detect", response_model=DetectResponse)
async def detect_pipeline(
    request: DetectRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> DetectResponse:
    """Match text against pipeline triggers without running anything."""
    match = service.detect(request.text)
    if match is None:
        return DetectResponse(matched=False)

    return DetectResponse(
        matched=True,
        pipeline_id=match.pipeline.id,
        variables=dict(match.variables),
        consent_required=match.pipeline.consent_required,
        pattern=match.pattern,
    )


@router.post("/pipelines/trigger", response_model=TriggerResponse)
async def trigger_pipeline(
    request: TriggerRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> TriggerResponse:
    """Detect a pipeline in text and run it to completion.

    Args:
        request: Trigger request.
        service: Pipeline service (from dependency).

    Returns:
        TriggerResponse with the execution record, if a pipeline matched.

    Raises:
        ConsentRequiredError: If the matched pipeline requires consent.
    """
    identity = Identity(user_id=request.user_id, session_id=request.session_id)
    execution = await service.trigger(
        request.text,
        identity=identity,
        consent_granted=request.consent_granted,
    )
    if execution is None:
        return TriggerResponse(matched=False)

    logger.info(
        f"Triggered execution {execution.id} of {execution.pipeline_id}: {execution.status.value}"
    )
    return TriggerResponse(matched=True, execution=execution)


@router.post(
    "/pipelines/{pipeline_id}/run",
    response_model=Execution,
    status_code=status.HTTP_201_CREATED,
)
async def run_pipeline(
    pipeline_id: str,
    request: RunPipelineRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> Execution:
    """Run a pipeline by identifier.

    Args:
        pipeline_id: Pipeline identifier.
        request: Run request with initial variables and identity.
        service: Pipeline service (from dependency).

    Returns:
        The execution record.

    Raises:
        PipelineNotFoundError: If the pipeline is not registered.
        ConsentRequiredError: If the pipeline requires consent.
    """
    identity = Identity(user_id=request.user_id, session_id=request.session_id)
    execution = await service.run(
        pipeline_id,
        variables=request.variables,
        identity=identity,
        consent_granted=request.consent_granted,
    )
    logger.info(f"Ran execution {execution.id} of {pipeline_id}: {execution.status.value}")
    return execution


@router.get("/executions", response_model=List[Execution])
async def list_executions(
    pipeline_id: Optional[str] = Query(default=None, description="Filter by pipeline"),
    user_id: Optional[str] = Query(default=None, description="Filter by user"),
    status_filter: Optional[ExecutionStatus] = Query(
        default=None, alias="status", description="Filter by execution status"
    ),
    service: PipelineService = Depends(get_pipeline_service),
) -> List[Execution]:
    """List execution records in start order."""
    return service.list_executions(
        pipeline_id=pipeline_id, user_id=user_id, status=status_filter
    )


@router.get("/executions/{execution_id}", response_model=Execution)
async def get_execution(
    execution_id: str,
    service: PipelineService = Depends(get_pipeline_service),
) -> Execution:
    """Get one execution record.

    Raises:
        HTTPException: If the execution is not found.
    """
    execution = service.get_execution(execution_id)
    if execution is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Execution {execution_id} not found",
        )
    return execution
