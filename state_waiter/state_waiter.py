import asyncio
import random
from typing import Any, Awaitable, Callable, Iterable, Optional

from loguru import logger
from state_waiter.errors import (
    FetchFailedError,
    ResourceNotFoundError,
    ResourceUnavailableError,
    TimeoutExceededError,
    UnexpectedStateError,
)
from state_waiter.models import (
    STATUS_NOT_FOUND,
    STATUS_UNAVAILABLE,
    StateChangeConfig,
    StatusPollingConfig,
    StatusSnapshot,
)

Fetch = Callable[[], Awaitable[StatusSnapshot]]


class StateWaiter:
    def __init__(
        self,
        config: StateChangeConfig,
        on_state_change: Optional[Callable[[StatusSnapshot], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.config = config
        self.logger = logger
        self.on_state_change = on_state_change
        self._clock = clock or (lambda: asyncio.get_running_loop().time())
        self._sleep = sleep or asyncio.sleep

    async def _fetch_once(self) -> StatusSnapshot:
        """Fetches the current status once, folding not-found/unavailable signals into states"""
        try:
            return await self.config.fetch()
        except ResourceNotFoundError:
            return StatusSnapshot(state=STATUS_NOT_FOUND)
        except ResourceUnavailableError:
            return StatusSnapshot(state=STATUS_UNAVAILABLE)
        except Exception as e:
            self.logger.error(
                f"Error fetching status of {self.config.description}: {e!r}"
            )
            raise FetchFailedError(self.config.description, e) from e

    async def _refresh(self, remaining: float) -> Optional[StatusSnapshot]:
        """Fetches the current status within the per-fetch bound.

        Returns None when the fetch did not answer within that bound. Errors
        raised by the fetch itself, timeouts included, arrive here already
        wrapped in FetchFailedError.
        """
        bound = min(self.config.polling.fetch_timeout, remaining)
        try:
            return await asyncio.wait_for(self._fetch_once(), timeout=bound)
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Status fetch for {self.config.description} took longer than {bound:.2f}s"
            )
            return None

    def _calculate_delay(self, attempt: int) -> float:
        """Calculates the delay before the next poll using exponential backoff with an optional jitter"""
        polling = self.config.polling
        delay = min(
            polling.initial_delay * (polling.backoff_factor**attempt),
            polling.max_delay,
        )

        # Add random jitter between 0-20% of the delay
        if polling.jitter:
            delay *= 1 + random.uniform(0, 0.2)
        return delay

    async def _handle_state_change(
        self, snapshot: StatusSnapshot, last_state: Optional[str]
    ) -> None:
        """Invoke the state change callback if the state has changed.

        Errors raised by the callback are the caller's own and propagate unchanged.
        """
        if last_state == snapshot.state:
            return
        self.logger.info(
            f"{self.config.description} state changed: {last_state} -> {snapshot.state}"
        )
        if self.on_state_change is not None:
            await self.on_state_change(snapshot)

    async def _wait_before_retry(self, attempt: int, remaining: float) -> None:
        """Waits for the backoff delay, never past the deadline"""
        delay = min(self._calculate_delay(attempt), remaining)
        self.logger.debug(
            f"{self.config.description} not ready, waiting {delay:.2f}s before next poll"
        )
        await self._sleep(delay)

    def _classify(self, snapshot: StatusSnapshot, target_occurrence: int) -> int:
        """Returns the updated consecutive target count; raises on an unexpected state."""
        if snapshot.state in self.config.target:
            return target_occurrence + 1
        if snapshot.state in self.config.pending:
            return 0
        self.logger.error(
            f"{self.config.description} reached unexpected state {snapshot.state}"
        )
        raise UnexpectedStateError(
            self.config.description,
            snapshot.state,
            self.config.pending,
            self.config.target,
        )

    async def wait(self) -> StatusSnapshot:
        """Poll until a target state is reached, an unexpected state is seen, fetch fails or time runs out"""
        config = self.config
        start = self._clock()
        deadline = start + config.timeout
        attempt = 0
        target_occurrence = 0
        last_state: Optional[str] = None

        self.logger.debug(
            f"Waiting up to {config.timeout:.1f}s for {config.description} "
            f"to reach {sorted(config.target)}"
        )
        if config.polling.delay > 0:
            await self._sleep(min(config.polling.delay, config.timeout))

        try:
            while True:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    break

                snapshot = await self._refresh(remaining)
                if snapshot is not None:
                    snapshot = snapshot.model_copy(
                        update={"elapsed_time": self._clock() - start}
                    )
                    await self._handle_state_change(snapshot, last_state)
                    last_state = snapshot.state

                    target_occurrence = self._classify(snapshot, target_occurrence)
                    if target_occurrence >= config.polling.continuous_target_occurrence:
                        self.logger.info(
                            f"{config.description} reached {snapshot.state} "
                            f"after {snapshot.elapsed_time:.2f}s"
                        )
                        return snapshot

                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                await self._wait_before_retry(attempt, remaining)
                attempt += 1
        except asyncio.CancelledError:
            self.logger.debug(f"Wait for {config.description} cancelled")
            raise

        self.logger.error(
            f"Timed out waiting for {config.description} (last state: {last_state})"
        )
        raise TimeoutExceededError(config.description, config.timeout, last_state)


async def wait_until_ready(
    fetch: Fetch,
    pending: Iterable[str],
    target: Iterable[str],
    timeout: float,
    polling: Optional[StatusPollingConfig] = None,
    description: str = "resource",
    **waiter_kwargs: Any,
) -> Any:
    """Wait for a resource to reach one of the target states and return its payload."""
    config = StateChangeConfig(
        pending=frozenset(pending),
        target=frozenset(target),
        fetch=fetch,
        timeout=timeout,
        polling=polling or StatusPollingConfig(),
        description=description,
    )
    snapshot = await StateWaiter(config, **waiter_kwargs).wait()
    return snapshot.payload


async def wait_until_absent(
    fetch: Fetch,
    pending: Iterable[str],
    timeout: float,
    polling: Optional[StatusPollingConfig] = None,
    description: str = "resource",
    **waiter_kwargs: Any,
) -> None:
    """Wait for a resource to disappear; a not-found signal on any poll is success."""
    await wait_until_ready(
        fetch,
        pending,
        [STATUS_NOT_FOUND],
        timeout,
        polling=polling,
        description=description,
        **waiter_kwargs,
    )
