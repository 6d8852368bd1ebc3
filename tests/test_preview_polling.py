"""
Tests for the client-side preview poller.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from shopdata.core.errors import (
    AuthenticationRequiredError,
    PollingAbortedError,
    PollingTimeoutError,
)
from shopdata.core.preview.polling import TIMEOUT_MESSAGE, PreviewPoller
from shopdata.models import PreviewData, PreviewExecution


def _preview(status: str, start_time=None) -> PreviewData:
    return PreviewData(status=status, execution=PreviewExecution(id="e1", start_time=start_time))


def _fetcher(*results) -> AsyncMock:
    return AsyncMock(side_effect=list(results))


async def _collect(poller: PreviewPoller, execution_id: str = "e1") -> list:
    return [update async for update in poller.poll(execution_id)]


class TestPolling:
    @pytest.mark.asyncio
    async def test_stops_at_completed(self):
        fetch = _fetcher(_preview("pending"), _preview("running"), _preview("completed"))
        sleep = AsyncMock()
        poller = PreviewPoller(fetch, interval_seconds=2.0, sleep=sleep)

        updates = await _collect(poller)

        assert [u.data.status for u in updates] == ["pending", "running", "completed"]
        assert [u.attempt for u in updates] == [1, 2, 3]
        assert updates[-1].is_terminal is True
        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.0)
        fetch.assert_awaited_with("e1")

    @pytest.mark.asyncio
    async def test_failed_is_terminal(self):
        poller = PreviewPoller(_fetcher(_preview("failed")), sleep=AsyncMock())

        result = await poller.wait("e1")

        assert result.status == "failed"

    @pytest.mark.asyncio
    async def test_timeout_after_max_attempts(self):
        sleep = AsyncMock()
        poller = PreviewPoller(
            _fetcher(*[_preview("running")] * 3), max_attempts=3, sleep=sleep
        )

        with pytest.raises(PollingTimeoutError) as exc_info:
            await _collect(poller)

        assert str(exc_info.value) == TIMEOUT_MESSAGE
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_wait_returns_terminal_preview(self):
        fetch = _fetcher(_preview("running"), _preview("completed"))
        poller = PreviewPoller(fetch, sleep=AsyncMock())

        result = await poller.wait("e1")

        assert result.status == "completed"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_wait_times_out_without_terminal_status(self):
        poller = PreviewPoller(
            _fetcher(*[_preview("pending")] * 2), max_attempts=2, sleep=AsyncMock()
        )

        with pytest.raises(PollingTimeoutError):
            await poller.wait("e1")


class TestErrors:
    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        fetch = _fetcher(
            RuntimeError("blip"), RuntimeError("blip"), _preview("running"),
            RuntimeError("blip"), _preview("completed"),
        )
        poller = PreviewPoller(fetch, max_consecutive_errors=3, sleep=AsyncMock())

        updates = await _collect(poller)

        assert [u.attempt for u in updates] == [3, 5]
        assert fetch.await_count == 5

    @pytest.mark.asyncio
    async def test_consecutive_errors_abort(self):
        boom = RuntimeError("service down")
        fetch = _fetcher(boom, boom, boom, _preview("completed"))
        poller = PreviewPoller(fetch, max_consecutive_errors=3, sleep=AsyncMock())

        with pytest.raises(PollingAbortedError, match="3 consecutive errors") as exc_info:
            await _collect(poller)

        assert exc_info.value.last_error is boom
        assert fetch.await_count == 3

    @pytest.mark.asyncio
    async def test_authentication_error_stops_immediately(self):
        fetch = _fetcher(AuthenticationRequiredError("expired"), _preview("completed"))
        poller = PreviewPoller(fetch, sleep=AsyncMock())

        with pytest.raises(AuthenticationRequiredError):
            await _collect(poller)

        assert fetch.await_count == 1

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            PreviewPoller(AsyncMock(), max_attempts=0)
        with pytest.raises(ValueError):
            PreviewPoller(AsyncMock(), max_consecutive_errors=0)


class TestStuckUi:
    @pytest.mark.asyncio
    async def test_polling_start_is_used_without_start_time(self, clock):
        async def sleep(seconds):
            clock.advance(timedelta(minutes=2))

        fetch = _fetcher(*[_preview("running")] * 3, _preview("completed"))
        poller = PreviewPoller(
            fetch, stuck_threshold=timedelta(minutes=3), clock=clock, sleep=sleep
        )

        updates = await _collect(poller)

        assert [u.should_show_stuck_ui for u in updates] == [False, False, True, False]

    @pytest.mark.asyncio
    async def test_execution_start_time_wins(self, clock):
        started = clock.now - timedelta(minutes=10)
        poller = PreviewPoller(
            _fetcher(_preview("running", started), _preview("completed", started)),
            clock=clock,
            sleep=AsyncMock(),
        )

        updates = await _collect(poller)

        assert updates[0].should_show_stuck_ui is True
        assert updates[1].should_show_stuck_ui is False
