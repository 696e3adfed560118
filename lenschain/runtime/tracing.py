"""Tracing for pipeline runs using Langfuse.

Each pipeline run opens a span, with one child span per step. Timeouts,
cancellations and failures are logged as events on the trace. When no
Langfuse credentials are configured every operation is a no-op, so the
executor can trace unconditionally.
"""

import contextvars
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from langfuse import Langfuse

from lenschain.config import settings

logger = logging.getLogger(__name__)

# Context variable for trace context propagation
_trace_context: contextvars.ContextVar[Optional[Dict[str, Any]]] = (
    contextvars.ContextVar("trace_context", default=None)
)


def _to_langfuse_trace_id(trace_id: str) -> str:
    """Convert a trace ID to Langfuse format (32 lowercase hex chars, no dashes)."""
    cleaned = trace_id.replace("-", "").lower()
    return cleaned[:32].ljust(32, "0")


class Tracer:
    """Tracer for pipeline runs backed by Langfuse.

    The trace context (trace id, current observation id) is kept in a
    context variable, so concurrent runs on one event loop do not see each
    other's spans.
    """

    def __init__(
        self,
        public_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        enabled: bool = True,
    ):
        """Initialize the tracer.

        Args:
            public_key: Langfuse public key. If None, uses settings.langfuse_public_key.
            secret_key: Langfuse secret key. If None, uses settings.langfuse_secret_key.
            base_url: Langfuse base URL. If None, uses settings.langfuse_base_url.
            enabled: Whether tracing is enabled. If False, operations are no-ops.
        """
        public_key = public_key or settings.langfuse_public_key
        secret_key = secret_key or settings.langfuse_secret_key
        self.enabled = enabled and bool(public_key)

        if self.enabled:
            self.client: Optional[Langfuse] = Langfuse(
                public_key=public_key,
                secret_key=secret_key or "",
                base_url=base_url or settings.langfuse_base_url,
            )
        else:
            self.client = None
            logger.debug("Tracing is disabled. Set Langfuse credentials to enable.")

    def create_trace_id(self) -> str:
        """Create a unique trace ID."""
        return str(uuid.uuid4())

    def get_trace_context(self) -> Optional[Dict[str, Any]]:
        """Get the current trace context."""
        return _trace_context.get()

    def set_trace_context(self, context: Dict[str, Any]) -> None:
        """Set the trace context for propagation."""
        _trace_context.set(context)

    def clear_trace_context(self) -> None:
        """Clear the current trace context."""
        _trace_context.set(None)

    @asynccontextmanager
    async def async_span(
        self,
        name: str,
        trace_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[Any]:
        """Open a tracing span around an awaited block.

        Args:
            name: Name of the span, e.g. ``pipeline.move-to-new-city``.
            trace_id: Optional trace ID. Defaults to the current context's
                trace or a new one.
            metadata: Optional metadata to attach to the span.

        Yields:
            The Langfuse observation, or None when tracing is disabled or
            the span could not be opened.
        """
        if not self.enabled or self.client is None:
            yield None
            return

        current = self.get_trace_context() or {}
        trace_id = trace_id or current.get("trace_id") or self.create_trace_id()
        parent_observation_id = current.get("observation_id")

        try:
            from langfuse.types import TraceContext

            trace_context = TraceContext(trace_id=_to_langfuse_trace_id(trace_id))
        except (ImportError, AttributeError):
            trace_context = None

        try:
            observation_cm = self.client.start_as_current_observation(
                name=name,
                as_type="span",
                metadata=metadata or {},
                trace_context=trace_context,
            )
        except (AttributeError, TypeError) as e:
            logger.warning(f"Langfuse span not available: {e}, tracing disabled for span: {name}")
            yield None
            return

        token = _trace_context.set(current)
        try:
            with observation_cm as observation:
                self.set_trace_context(
                    {
                        "trace_id": trace_id,
                        "span_name": name,
                        "observation_id": getattr(observation, "id", None),
                        "parent_observation_id": parent_observation_id,
                    }
                )
                yield observation
        finally:
            _trace_context.reset(token)

    def log_event(
        self,
        name: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log an event on the current trace.

        Args:
            name: Name of the event, e.g. ``step.timeout``.
            metadata: Optional metadata for the event.
        """
        if not self.enabled or self.client is None:
            return

        context = self.get_trace_context() or {}
        try:
            self.client.create_event(
                name=name,
                metadata={**(metadata or {}), "trace_id": context.get("trace_id")},
            )
        except (AttributeError, TypeError) as e:
            logger.warning(f"Langfuse create_event() not available: {e}, event not logged: {name}")
        except Exception as e:
            logger.warning(f"Error logging event {name}: {e}")

    def flush(self) -> None:
        """Flush pending traces to Langfuse."""
        if not self.enabled or self.client is None:
            return

        try:
            self.client.flush()
        except Exception as e:
            logger.warning(f"Error flushing traces: {e}")


# Default tracer instance
_default_tracer: Optional[Tracer] = None


def get_tracer() -> Tracer:
    """Get the default tracer instance."""
    global _default_tracer
    if _default_tracer is None:
        _default_tracer = Tracer(enabled=settings.enable_tracing)
    return _default_tracer


def set_tracer(tracer: Tracer) -> None:
    """Set the default tracer instance."""
    global _default_tracer
    _default_tracer = tracer
