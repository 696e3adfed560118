"""In-process lens action runner.

LensActionRunner dispatches ``(lens, action)`` pairs to registered
handlers. It is the default runner for the API process and for tests; a
deployment that runs lens actions elsewhere supplies its own ActionRunner.

A handler is an async (or plain) callable with the signature::

    async def handler(inputs: Dict[str, Any], context: ActionContext) -> Any

and may return an ActionResult, a mapping with ActionResult fields, or any
other value, which becomes the artifact of a successful result.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from lenschain.contracts.action_io import (
    ActionContext,
    ActionResult,
    coerce_action_result,
    create_action_result,
)

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Dict[str, Any], ActionContext], Union[Awaitable[Any], Any]]


class LensActionRunner:
    """Action runner backed by a table of registered handlers."""

    def __init__(self) -> None:
        # Format: {(lens, action): handler}
        self._handlers: Dict[Tuple[str, str], ActionHandler] = {}

    def register(self, lens: str, action: str, handler: ActionHandler) -> None:
        """Register the handler for a lens action.

        Args:
            lens: Lens name, e.g. "healthcare".
            action: Action name, e.g. "build-care-plan".
            handler: Callable performing the action, usually async.

        Raises:
            ValueError: If ``handler`` is not callable.
        """
        if not callable(handler):
            raise ValueError(f"Handler for {lens}.{action} must be callable")

        if (lens, action) in self._handlers:
            logger.info(f"Replacing handler for lens action: {lens}.{action}")
        else:
            logger.info(f"Registered lens action: {lens}.{action}")
        self._handlers[(lens, action)] = handler

    def action(self, lens: str, action: str) -> Callable[[ActionHandler], ActionHandler]:
        """Decorator form of ``register``."""

        def decorator(handler: ActionHandler) -> ActionHandler:
            self.register(lens, action, handler)
            return handler

        return decorator

    def get_handler(self, lens: str, action: str) -> Optional[ActionHandler]:
        """Get the handler for a lens action, or None."""
        return self._handlers.get((lens, action))

    def list_actions(self) -> List[str]:
        """List registered actions as ``lens.action`` strings."""
        return [f"{lens}.{action}" for lens, action in self._handlers]

    async def invoke(
        self,
        lens: str,
        action: str,
        inputs: Dict[str, Any],
        context: ActionContext,
    ) -> ActionResult:
        """Perform a lens action.

        An unregistered action yields a failed result rather than an
        exception. Exceptions raised by a handler propagate to the caller,
        which records them as a step failure.
        """
        handler = self._handlers.get((lens, action))
        if handler is None:
            logger.warning(f"No handler registered for lens action {lens}.{action}")
            return create_action_result(
                ok=False,
                error=f"Unknown lens action: {lens}.{action}",
            )

        logger.debug(
            f"Invoking {lens}.{action} for execution {context.execution_id} "
            f"with inputs: {list(inputs.keys())}"
        )
        result = handler(inputs, context)
        if inspect.isawaitable(result):
            result = await result
        return coerce_action_result(result)
