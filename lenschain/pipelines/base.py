"""Pipeline definition models.

A pipeline definition is a trigger plus a fixed, ordered sequence of lens
action steps. Definitions are created once at process start and never
mutated afterwards; every model here is frozen.
"""

import re
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

VARIABLE_SIGIL = "$"


class TriggerType(str, Enum):
    """Enumeration of trigger kinds."""

    CHAT_INTENT = "chat_intent"


class Trigger(BaseModel):
    """Pattern-matching rule deciding whether a pipeline starts.

    Patterns are regular expression sources tried in declaration order;
    the first one that matches wins. When ``extract_variable`` is set, the
    first capture group of the winning pattern seeds the variable context
    under that name.
    """

    model_config = ConfigDict(frozen=True)

    type: TriggerType = Field(
        default=TriggerType.CHAT_INTENT, description="Kind of trigger"
    )
    patterns: Tuple[str, ...] = Field(
        ..., min_length=1, description="Regular expressions tested in declaration order"
    )
    ignore_case: bool = Field(
        default=True, description="Whether patterns match case-insensitively"
    )
    extract_variable: Optional[str] = Field(
        default=None,
        description="Variable name bound to the first capture group of the matching pattern",
    )

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Validate that every pattern is a compilable regular expression."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid trigger pattern {pattern!r}: {e}") from e
        return v

    @property
    def flags(self) -> int:
        """Regular expression flags applied to every pattern."""
        return re.IGNORECASE if self.ignore_case else 0

    def compiled_patterns(self) -> List[re.Pattern]:
        """Compile the trigger patterns, in declaration order."""
        # re keeps its own cache of compiled patterns
        return [re.compile(pattern, self.flags) for pattern in self.patterns]


class Step(BaseModel):
    """A single lens action within a pipeline.

    ``input_mapping`` values are literals, ``$variable`` references,
    ``$variable.dotted.path`` references, or template strings embedding
    ``$variable`` references. The mapping is a read-only view, so a
    registered definition cannot be changed through it.
    """

    model_config = ConfigDict(frozen=True)

    order: int = Field(..., ge=1, description="1-based position of the step, informational")
    lens: str = Field(..., min_length=1, description="Lens (domain) owning the action")
    action: str = Field(..., min_length=1, description="Action to invoke on the lens")
    input_mapping: Mapping[str, Any] = Field(
        default_factory=dict,
        validate_default=True,
        description="Parameter name to literal, reference or template",
    )
    output_key: Optional[str] = Field(
        default=None, description="Variable under which the step's result is stored"
    )
    timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Deadline for this step, overriding the executor default"
    )

    @field_validator("input_mapping")
    @classmethod
    def freeze_input_mapping(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        """Store the input mapping as a read-only copy."""
        return MappingProxyType(dict(v))

    @field_serializer("input_mapping")
    def serialize_input_mapping(self, v: Mapping[str, Any]) -> Dict[str, Any]:
        return dict(v)

    @property
    def label(self) -> str:
        """Short human-readable identifier, e.g. ``healthcare.build-care-plan``."""
        return f"{self.lens}.{self.action}"


class PipelineDefinition(BaseModel):
    """Immutable definition of a pipeline.

    Steps execute in list order; ``Step.order`` does not need to be
    contiguous. ``consent_required`` is a policy hint enforced by the
    caller before the pipeline is run.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique identifier for the pipeline")
    trigger: Trigger = Field(..., description="Trigger deciding when the pipeline starts")
    steps: Tuple[Step, ...] = Field(..., min_length=1, description="Steps in execution order")
    consent_required: bool = Field(
        default=False, description="Whether the user must consent before the pipeline runs"
    )
    description: str = Field(default="", description="Human-readable description")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Additional metadata about the pipeline"
    )

    @model_validator(mode="after")
    def validate_output_keys(self) -> "PipelineDefinition":
        """Reject output keys that would shadow an earlier variable."""
        seen = set()
        if self.trigger.extract_variable:
            seen.add(self.trigger.extract_variable)
        for step in self.steps:
            if step.output_key is None:
                continue
            if step.output_key in seen:
                raise ValueError(
                    f"Pipeline {self.id}: output key '{step.output_key}' of step "
                    f"{step.order} ({step.label}) collides with an earlier variable"
                )
            seen.add(step.output_key)
        return self

    @property
    def output_keys(self) -> List[str]:
        """Output keys declared by the steps, in step order."""
        return [step.output_key for step in self.steps if step.output_key]


class PipelineMatch(BaseModel):
    """Result of matching free text against the registry."""

    model_config = ConfigDict(frozen=True)

    pipeline: PipelineDefinition = Field(..., description="The matched pipeline")
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Variables extracted by the trigger"
    )
    pattern: str = Field(..., description="The pattern that matched")
