"""Retry, debounce and refresh orchestration for progress fetches.

A ``RefreshController`` owns one fetch operation and guarantees:

* at most one fetch in flight (concurrent callers share it),
* no unforced refetch within ``min_interval`` of the previous one,
* exponential backoff on ``TransientFetchError``, capped in attempts and delay,
* bursts of ``request_refresh()`` collapse into one trailing fetch,
* nothing touches controller state once ``close()`` has been called.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from vread.config import (
    REFRESH_BASE_DELAY,
    REFRESH_DEBOUNCE,
    REFRESH_MAX_ATTEMPTS,
    REFRESH_MAX_DELAY,
    REFRESH_MIN_INTERVAL,
)
from vread.errors import TransientFetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = REFRESH_MAX_ATTEMPTS
    base_delay: float = REFRESH_BASE_DELAY
    max_delay: float = REFRESH_MAX_DELAY

    def delay(self, attempt: int) -> float:
        """Wait before retry number ``attempt`` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_backoff: Callable[[int, float, Exception], None] | None = None,
) -> Any:
    """Run ``operation``, retrying transient failures with exponential backoff.

    Non-transient exceptions propagate immediately. The last transient error
    is re-raised once ``policy.max_attempts`` is exhausted.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except TransientFetchError as exc:
            if attempt >= policy.max_attempts:
                raise
            delay = policy.delay(attempt)
            if on_backoff is not None:
                on_backoff(attempt, delay, exc)
            await sleep(delay)
            attempt += 1


class Debouncer:
    """Collapses bursts of calls into one trailing invocation."""

    def __init__(self, delay: float, action: Callable[[], Awaitable[Any]]) -> None:
        self.delay = delay
        self._action = action
        self._task: asyncio.Task | None = None

    def trigger(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire())

    async def _fire(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        try:
            await self._action()
        except Exception:
            logger.exception("Debounced action failed")

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class RefreshState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    BACKOFF_WAIT = "backoff_wait"


class RefreshController:
    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        on_success: Callable[[Any], None] | None = None,
        min_interval: float = REFRESH_MIN_INTERVAL,
        policy: RetryPolicy | None = None,
        debounce: float = REFRESH_DEBOUNCE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "refresh",
    ) -> None:
        self._fetch = fetch
        self._on_success = on_success
        self.min_interval = min_interval
        self.policy = policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep
        self.name = name

        self.state = RefreshState.IDLE
        self.attempts = 0
        self.fetch_count = 0
        self.last_error: Exception | None = None
        self.last_result: Any = None
        self.last_fetch_at: float | None = None

        self._inflight: asyncio.Task | None = None
        self._closed = False
        self._debouncer = Debouncer(debounce, lambda: self.refresh(force=True))

    @property
    def closed(self) -> bool:
        return self._closed

    async def refresh(self, force: bool = False) -> Any:
        """Fetch now, or join the fetch already in flight.

        Unforced calls within ``min_interval`` of the last successful fetch
        return the previous result without fetching.
        """
        if self._closed:
            return self.last_result
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)
        if (
            not force
            and self.last_fetch_at is not None
            and self._clock() - self.last_fetch_at < self.min_interval
        ):
            logger.debug("%s: skipped, last fetch %.2fs ago", self.name, self._clock() - self.last_fetch_at)
            return self.last_result

        self._inflight = asyncio.get_running_loop().create_task(self._run())
        try:
            return await asyncio.shield(self._inflight)
        finally:
            if self._inflight is not None and self._inflight.done():
                self._inflight = None

    def request_refresh(self) -> None:
        """Debounced forced refresh."""
        if not self._closed:
            self._debouncer.trigger()

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def cancel_pending(self) -> None:
        """Drop a scheduled debounced refresh, leaving any fetch in flight alone."""
        self._debouncer.cancel()

    @property
    def refresh_pending(self) -> bool:
        return self._debouncer.pending

    async def _run(self) -> Any:
        self.attempts = 0

        async def _attempt() -> Any:
            self.state = RefreshState.FETCHING
            self.attempts += 1
            self.fetch_count += 1
            return await self._fetch()

        def _backoff(attempt: int, delay: float, exc: Exception) -> None:
            if self._closed:
                return
            self.state = RefreshState.BACKOFF_WAIT
            self.last_error = exc
            logger.warning("%s: attempt %d failed (%s), retrying in %.2fs", self.name, attempt, exc, delay)

        try:
            result = await retry_with_backoff(_attempt, self.policy, sleep=self._sleep, on_backoff=_backoff)
        except Exception as exc:
            if not self._closed:
                self.state = RefreshState.IDLE
                self.last_error = exc
                logger.error("%s: giving up after %d attempts: %s", self.name, self.attempts, exc)
            raise

        if self._closed:
            return result
        self.state = RefreshState.IDLE
        self.attempts = 0
        self.last_error = None
        self.last_result = result
        self.last_fetch_at = self._clock()
        if self._on_success is not None:
            self._on_success(result)
        return result

    def reset(self) -> None:
        """Drop pending work and counters, e.g. on user change."""
        self._debouncer.cancel()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self.state = RefreshState.IDLE
        self.attempts = 0
        self.last_error = None
        self.last_result = None
        self.last_fetch_at = None

    def close(self) -> None:
        self.reset()
        self._closed = True
