"""Poll loop — waits for an asynchronous stack analysis job to finish.

One loop serves one job handle.  Every ``interval_seconds`` it fetches the
job status; the loop ends with exactly one outcome:

    no ``error`` key      → AnalysisSuccess(response)
    ``error`` key         → pending; AnalysisTimeout once attempts run out
    transport failure     → AnalysisFailure(PollTransportError)

The interval timer is cancelled before the outcome is returned, and a loop
that has produced an outcome cannot be started again.
"""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Awaitable, Callable

import structlog

from stackanalysis.config import Settings
from stackanalysis.domain.models import (
    AnalysisFailure,
    AnalysisOutcome,
    AnalysisSuccess,
    AnalysisTimeout,
    JobHandle,
    PollState,
    RequestOptions,
)
from stackanalysis.domain.protocols import Transport
from stackanalysis.shared.exceptions import PollTransportError

from .endpoints import status_url

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class PollTimer:
    """Repeating interval timer owned by a single poll loop."""

    def __init__(self, interval_seconds: float, sleep: Sleep = asyncio.sleep) -> None:
        self._interval = interval_seconds
        self._sleep = sleep
        self._active = True
        self.fired = 0

    @property
    def active(self) -> bool:
        return self._active

    async def tick(self) -> None:
        if not self._active:
            raise RuntimeError("poll timer already cancelled")
        await self._sleep(self._interval)
        self.fired += 1

    def cancel(self) -> bool:
        """Stop the timer; returns ``False`` if it was already stopped."""
        was_active = self._active
        self._active = False
        return was_active


def is_pending(response: Any) -> bool:
    """A status response carrying a top-level ``error`` key means "not ready yet"."""
    return isinstance(response, Mapping) and "error" in response


class PollLoop:
    """Bounded, single-use poll loop for one job handle.

    Args:
        transport: HTTP transport used for the status GETs.
        interval_seconds: Delay before every tick.
        max_attempts: Pending responses tolerated before timing out.
        sleep: Awaitable used by the timer; replaceable in tests.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        interval_seconds: float,
        max_attempts: int,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._interval = interval_seconds
        self._max_attempts = max_attempts
        self._timer = PollTimer(interval_seconds, sleep)
        self._state: PollState | None = None
        self._outcome: AnalysisOutcome | None = None

    @classmethod
    def from_settings(cls, transport: Transport, settings: Settings, sleep: Sleep = asyncio.sleep) -> PollLoop:
        return cls(
            transport,
            interval_seconds=settings.poll_interval_seconds,
            max_attempts=settings.max_poll_attempts,
            sleep=sleep,
        )

    @property
    def state(self) -> PollState | None:
        return self._state

    @property
    def outcome(self) -> AnalysisOutcome | None:
        return self._outcome

    @property
    def ticks(self) -> int:
        return self._timer.fired

    async def poll(
        self,
        handle: JobHandle,
        host: str,
        api_key: str,
        correlation_id: str | None = None,
    ) -> AnalysisOutcome:
        if self._state is not None:
            raise RuntimeError("poll loop already used")
        self._state = state = PollState(
            handle=handle,
            remaining_attempts=self._max_attempts,
            interval_seconds=self._interval,
        )
        url = status_url(host, handle, api_key)
        headers = RequestOptions(correlation_id=correlation_id).headers()

        try:
            while True:
                await self._timer.tick()
                state.ticks += 1
                try:
                    response = await self._transport.get(url, headers=headers)
                except Exception as exc:
                    error = PollTransportError(
                        f"Failed to fetch stack analysis status: {exc}",
                        context={"handle": handle, "tick": state.ticks},
                    )
                    error.__cause__ = exc
                    return self._finish(AnalysisFailure(error))

                if not is_pending(response):
                    return self._finish(AnalysisSuccess(response))

                state.remaining_attempts -= 1
                logger.info("poll_pending", handle=handle, remaining=state.remaining_attempts)
                if state.remaining_attempts <= 0:
                    return self._finish(AnalysisTimeout(attempts=state.ticks))
        finally:
            self._timer.cancel()

    def _finish(self, outcome: AnalysisOutcome) -> AnalysisOutcome:
        self._timer.cancel()
        self._outcome = outcome
        logger.info(
            "poll_finished",
            handle=self._state.handle if self._state else None,
            outcome=type(outcome).__name__,
            ticks=self._timer.fired,
        )
        return outcome


__all__ = ["PollLoop", "PollTimer", "is_pending"]
