"""
Client-side preview polling.

Re-reads an execution's preview at a fixed interval until it is terminal,
the attempt ceiling is reached, or reads keep failing. Stopping the poller
never touches the execution itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import AsyncIterator, Awaitable, Callable

from shopdata.core.errors import (
    AuthenticationRequiredError,
    PollingAbortedError,
    PollingTimeoutError,
)
from shopdata.core.preview.stuck import should_show_stuck_ui
from shopdata.models import ExecutionStatus, PreviewData

logger = logging.getLogger(__name__)

PreviewFetcher = Callable[[str], Awaitable[PreviewData]]

TIMEOUT_MESSAGE = (
    "The dataset execution is taking longer than expected. "
    "It keeps running in the background; check back later."
)

_TERMINAL = {ExecutionStatus.COMPLETED.value, ExecutionStatus.FAILED.value}


@dataclass(frozen=True)
class PollUpdate:
    data: PreviewData
    attempt: int
    should_show_stuck_ui: bool

    @property
    def is_terminal(self) -> bool:
        return self.data.status in _TERMINAL


class PreviewPoller:
    def __init__(
        self,
        fetch: PreviewFetcher,
        *,
        interval_seconds: float = 2.0,
        max_attempts: int = 60,
        max_consecutive_errors: int = 3,
        stuck_threshold: timedelta = timedelta(minutes=3),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be at least 1")
        self._fetch = fetch
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.max_consecutive_errors = max_consecutive_errors
        self.stuck_threshold = stuck_threshold
        self._clock = clock
        self._sleep = sleep

    async def poll(self, execution_id: str) -> AsyncIterator[PollUpdate]:
        """
        Yield one update per successful read until a terminal status.

        Raises:
            AuthenticationRequiredError: immediately, without retrying
            PollingAbortedError: after `max_consecutive_errors` failed reads
            PollingTimeoutError: after `max_attempts` reads without a terminal status
        """
        started_polling = self._clock()
        consecutive_errors = 0

        for attempt in range(1, self.max_attempts + 1):
            try:
                data = await self._fetch(execution_id)
            except AuthenticationRequiredError:
                raise
            except Exception as e:
                consecutive_errors += 1
                logger.warning(
                    "Preview poll %d for %s failed (%d/%d): %s",
                    attempt,
                    execution_id,
                    consecutive_errors,
                    self.max_consecutive_errors,
                    e,
                )
                if consecutive_errors >= self.max_consecutive_errors:
                    raise PollingAbortedError(
                        f"Stopped polling after {consecutive_errors} consecutive errors: {e}",
                        last_error=e,
                    ) from e
            else:
                consecutive_errors = 0
                update = PollUpdate(
                    data=data,
                    attempt=attempt,
                    should_show_stuck_ui=should_show_stuck_ui(
                        data,
                        now=self._clock(),
                        threshold=self.stuck_threshold,
                        fallback_started_at=started_polling,
                    ),
                )
                yield update
                if update.is_terminal:
                    return

            if attempt < self.max_attempts:
                await self._sleep(self.interval_seconds)

        raise PollingTimeoutError(TIMEOUT_MESSAGE)

    async def wait(self, execution_id: str) -> PreviewData:
        """Poll to completion and return the terminal preview."""
        async for update in self.poll(execution_id):
            if update.is_terminal:
                return update.data
        raise PollingTimeoutError(TIMEOUT_MESSAGE)
