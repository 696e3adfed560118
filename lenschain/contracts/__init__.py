"""Contracts between the pipeline executor and its collaborators."""

from .action_io import (
    ActionContext,
    ActionResult,
    ActionRunner,
    coerce_action_result,
    create_action_result,
)

__all__ = [
    "ActionContext",
    "ActionResult",
    "ActionRunner",
    "coerce_action_result",
    "create_action_result",
]
