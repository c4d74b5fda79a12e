"""Exceptions raised by the state waiter.

``WaiterError`` subclasses are wait outcomes. ``ResourceNotFoundError`` and
``ResourceUnavailableError`` are signals a fetch function raises; the waiter
folds them into the ``NOT_FOUND`` and ``UNAVAILABLE`` states.
"""

from typing import AbstractSet, Optional


class WaiterError(Exception):
    """Base exception for failed waits."""


class TimeoutExceededError(WaiterError, TimeoutError):
    """Deadline reached before a target state was observed."""

    def __init__(
        self, description: str, timeout: float, last_state: Optional[str] = None
    ):
        self.description = description
        self.timeout = timeout
        self.last_state = last_state
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for {description} "
            f"(last state: {last_state or 'none observed'})"
        )


class UnexpectedStateError(WaiterError):
    """Observed state is neither pending nor target."""

    def __init__(
        self,
        description: str,
        state: str,
        pending: AbstractSet[str],
        target: AbstractSet[str],
    ):
        self.description = description
        self.state = state
        self.pending = frozenset(pending)
        self.target = frozenset(target)
        super().__init__(
            f"Unexpected state {state!r} for {description}, "
            f"wanted target {sorted(self.target)} (pending: {sorted(self.pending)})"
        )


class FetchFailedError(WaiterError):
    """The status query itself failed with a non-retryable error."""

    def __init__(self, description: str, error: BaseException):
        self.description = description
        self.error = error
        super().__init__(f"Error fetching status of {description}: {error}")


class ResourceNotFoundError(Exception):
    """Raised by fetch functions when the resource does not exist."""


class ResourceUnavailableError(Exception):
    """Raised by fetch functions when the resource exists but cannot be described yet."""
