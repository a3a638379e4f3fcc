"""
Readiness Gate

Tracks the lifecycle of a credential resolution pass and lets callers wait
for it. Waiters are woken by an asyncio.Event rather than polling; each pass
gets a fresh event so every waiter of that pass sees the same terminal state.
"""

from __future__ import annotations

import asyncio

import structlog

from voxrelay.credentials.errors import CredentialInitializationError, InitializationTimeoutError
from voxrelay.credentials.models import ResolutionState

logger = structlog.get_logger(__name__)


class ReadinessGate:
    """
    State machine: PENDING -> SUCCEEDED | FAILED(error).

    Only the resolver writes to the gate. ``reset()`` is the single way back to
    PENDING and is used when credentials are refreshed.
    """

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        """
        Initialize the gate in the PENDING state.

        Args:
            timeout_seconds: Default upper bound for ensure_ready()
        """
        self._timeout = timeout_seconds
        self._state = ResolutionState.PENDING
        self._error: CredentialInitializationError | None = None
        self._event = asyncio.Event()

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def error(self) -> CredentialInitializationError | None:
        return self._error

    @property
    def is_terminal(self) -> bool:
        return self._state is not ResolutionState.PENDING

    def reset(self) -> None:
        """Return to PENDING for a new resolution pass."""
        self._state = ResolutionState.PENDING
        self._error = None
        previous, self._event = self._event, asyncio.Event()
        # Wake waiters of the old pass so they re-wait on the new event
        previous.set()

    def succeed(self) -> None:
        self._state = ResolutionState.SUCCEEDED
        self._error = None
        self._event.set()

    def fail(self, error: CredentialInitializationError) -> None:
        self._state = ResolutionState.FAILED
        self._error = error
        self._event.set()

    async def ensure_ready(self, timeout: float | None = None) -> None:
        """
        Return once resolution has succeeded.

        Raises the stored terminal error immediately if resolution failed.
        While pending, suspends until the pass finishes or the timeout runs
        out. A timeout does not cancel the resolution itself.

        Args:
            timeout: Seconds to wait, defaults to the gate's timeout

        Raises:
            CredentialInitializationError: Resolution ended in FAILED
            InitializationTimeoutError: Still pending when the timeout expired
        """
        timeout = self._timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            if self._state is ResolutionState.SUCCEEDED:
                return
            if self._error is not None:
                raise self._error

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise InitializationTimeoutError(timeout)

            logger.debug("Waiting for credential initialization to complete")
            # The event may be swapped by reset() while we sleep; re-check state each wake-up.
            try:
                await asyncio.wait_for(self._event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                logger.warning("Credential initialization wait timed out", timeout=timeout)
                raise InitializationTimeoutError(timeout) from None
