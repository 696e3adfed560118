"""Input mapping resolution.

A step declares its inputs as a mapping from parameter name to one of:

- a literal value, passed through unchanged;
- a variable reference, ``"$carePlan"`` or a dotted path
  ``"$carePlan.dietaryGuidelines"``, replaced by the value found in the
  variable context;
- a template string, ``"management of $condition"``, in which every
  ``$name`` of a top-level string variable is substituted.

Resolution is pure: neither the mapping nor the variables are mutated, and
the same inputs always give the same output.
"""

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from lenschain.core.exceptions import MappingResolutionError
from lenschain.pipelines.base import VARIABLE_SIGIL

logger = logging.getLogger(__name__)

MISSING = object()


class UnresolvedReferencePolicy(str, Enum):
    """What to do when a ``$variable`` reference does not resolve."""

    # Keep the reference string as the parameter value
    LITERAL = "literal"
    # Raise MappingResolutionError
    STRICT = "strict"


def lookup_path(variables: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through the variable context.

    Each segment is looked up as a mapping key, or as an instance attribute
    for objects that are not mappings (e.g. pydantic models or dataclasses
    returned as artifacts). Sequences accept integer segments.

    Args:
        variables: The variable context.
        path: Dotted path without the sigil, e.g. ``"carePlan.title"``.

    Returns:
        The value at the path, or the ``MISSING`` sentinel if any segment
        is absent.
    """
    current: Any = variables
    for segment in path.split("."):
        if current is None:
            return MISSING
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.lstrip("-").isdigit():
            index = int(segment)
            if not -len(current) <= index < len(current):
                return MISSING
            current = current[index]
        elif not segment.startswith("_") and segment in getattr(current, "__dict__", {}):
            current = vars(current)[segment]
        else:
            return MISSING
    return current


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``$name`` occurrences with top-level string variables.

    Only string-valued variables take part; dotted paths inside templates
    are not walked, so ``"$plan.title"`` becomes ``"<plan>.title"`` when
    ``plan`` is a string and is left alone otherwise. Longer names are
    substituted first so ``$condition`` is not clobbered by ``$cond``.
    """
    result = template
    names = sorted(
        (name for name, value in variables.items() if isinstance(value, str)),
        key=len,
        reverse=True,
    )
    for name in names:
        result = result.replace(f"{VARIABLE_SIGIL}{name}", variables[name])
    return result


def resolve_value(
    key: str,
    value: Any,
    variables: Mapping[str, Any],
    policy: UnresolvedReferencePolicy = UnresolvedReferencePolicy.LITERAL,
) -> Any:
    """Resolve a single input mapping value.

    Raises:
        MappingResolutionError: If ``value`` is an unresolved reference and
            the policy is STRICT.
    """
    if not isinstance(value, str) or VARIABLE_SIGIL not in value:
        return value

    if value.startswith(VARIABLE_SIGIL):
        path = value[len(VARIABLE_SIGIL):]
        resolved = lookup_path(variables, path) if path else MISSING
        if resolved is not MISSING and resolved is not None:
            return resolved
        if policy == UnresolvedReferencePolicy.STRICT:
            raise MappingResolutionError(key, value)
        logger.debug(f"Input '{key}': reference {value} unresolved, passing it through literally")
        return value

    return render_template(value, variables)


def resolve_input_mapping(
    mapping: Optional[Mapping[str, Any]],
    variables: Mapping[str, Any],
    policy: UnresolvedReferencePolicy = UnresolvedReferencePolicy.LITERAL,
) -> Dict[str, Any]:
    """Resolve a step's declared input mapping against the variable context.

    Args:
        mapping: Parameter name to literal, reference or template.
        variables: The current variable context.
        policy: How unresolved ``$variable`` references are handled.

    Returns:
        A new dictionary of resolved inputs, keyed like ``mapping``.

    Raises:
        MappingResolutionError: On an unresolved reference under the
            STRICT policy.
    """
    if not mapping:
        return {}
    policy = UnresolvedReferencePolicy(policy)
    return {
        key: resolve_value(key, value, variables, policy)
        for key, value in mapping.items()
    }
