"""Cancellation tokens for pipeline runs.

A token is created by the caller, passed into ``PipelineExecutor.run`` and
handed on to the action runner through the ActionContext. Cancelling it
stops the run at the current step, which is recorded as cancelled.
"""

import asyncio
from typing import Optional


class CancellationToken:
    """One-shot cancellation signal shared between a caller and a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._requested_by: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Reason given when cancellation was requested."""
        return self._reason

    @property
    def requested_by(self) -> Optional[str]:
        """Who requested cancellation, if known."""
        return self._requested_by

    def cancel(self, reason: Optional[str] = None, requested_by: Optional[str] = None) -> None:
        """Request cancellation. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason or "Cancellation requested"
        self._requested_by = requested_by
        self._event.set()

    async def wait(self) -> None:
        """Wait until cancellation is requested."""
        await self._event.wait()

    def __repr__(self) -> str:
        state = f"cancelled, reason={self._reason!r}" if self.cancelled else "active"
        return f"CancellationToken({state})"
