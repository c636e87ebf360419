from __future__ import annotations

import asyncio

import pytest

from src.thumbforge.generation.generation_errors import ProviderError
from src.thumbforge.generation.generation_models import (
    FailedResult,
    GenerationRequest,
    JobState,
    JobStatusSnapshot,
    ProviderJobHandle,
    RemoteResult,
    TimeoutResult,
    utcnow,
)
from src.thumbforge.generation.job_poller import JobPoller
from tests.mocks.providers import FakeClock, ScriptedJobProvider

REQUEST = GenerationRequest(prompt_text="red car, dramatic lighting")


class BrokenPollProvider(ScriptedJobProvider):
    async def poll_status(self, handle: ProviderJobHandle) -> JobStatusSnapshot:
        self.polls += 1
        raise ProviderError("status endpoint down", provider_id=self.provider_id, status_code=503)


class HangingPollProvider(ScriptedJobProvider):
    async def poll_status(self, handle: ProviderJobHandle) -> JobStatusSnapshot:
        await asyncio.sleep(1.5)
        return await ScriptedJobProvider.poll_status(self, handle)


async def _submit(adapter: ScriptedJobProvider) -> ProviderJobHandle:
    return await adapter.submit(REQUEST)


@pytest.mark.asyncio
async def test_poller_returns_output_after_in_progress_ticks() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(
        ["starting", "processing", "processing", "succeeded"],
        output_urls=("https://cdn.test/a.png", "https://cdn.test/b.png"),
        clock=clock,
    )
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(
        await _submit(adapter), poll_interval_seconds=3, timeout_seconds=120
    )

    assert isinstance(result, RemoteResult)
    assert result.image_urls == ("https://cdn.test/a.png", "https://cdn.test/b.png")
    assert poller.state is JobState.SUCCEEDED
    assert poller.is_terminal
    assert poller.ticks == 4
    assert clock.sleeps == [3, 3, 3]
    assert adapter.cancel_calls == []


@pytest.mark.asyncio
async def test_poller_reports_provider_failure_reason() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(["processing", "failed"], error="NSFW content detected", clock=clock)
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(
        await _submit(adapter), poll_interval_seconds=3, timeout_seconds=120
    )

    assert isinstance(result, FailedResult)
    assert result.reason == "NSFW content detected"
    assert result.provider_id == "replicate"
    assert poller.state is JobState.FAILED
    assert adapter.cancel_calls == []


@pytest.mark.asyncio
async def test_poller_maps_provider_cancellation_to_failed_result() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(["canceled"], clock=clock)
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(
        await _submit(adapter), poll_interval_seconds=3, timeout_seconds=120
    )

    assert isinstance(result, FailedResult)
    assert poller.state is JobState.CANCELLED


@pytest.mark.asyncio
async def test_poller_times_out_and_cancels_exactly_once() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(["processing"], clock=clock)
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(
        await _submit(adapter), poll_interval_seconds=3, timeout_seconds=10
    )

    assert isinstance(result, TimeoutResult)
    assert result.timeout_seconds == 10
    assert poller.state is JobState.TIMED_OUT
    assert adapter.cancel_calls == ["pred-1"]
    # the final sleep is clipped to the remaining budget
    assert clock.sleeps == [3, 3, 3, 1]
    assert adapter.polls == 4


@pytest.mark.asyncio
async def test_deadline_is_measured_from_submission() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(["processing"], clock=clock)
    handle = await _submit(adapter)
    clock.advance(121)
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(handle, poll_interval_seconds=3, timeout_seconds=120)

    assert isinstance(result, TimeoutResult)
    assert adapter.polls == 0
    assert adapter.cancel_calls == ["pred-1"]


@pytest.mark.asyncio
async def test_success_reported_after_deadline_is_a_timeout() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(
        ["processing", "processing", "succeeded"],
        output_urls=("https://cdn.test/late.png",),
        clock=clock,
        tick_seconds=50,
    )
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(
        await _submit(adapter), poll_interval_seconds=3, timeout_seconds=120
    )

    # the third status call returns at t=156, past the 120 s deadline
    assert isinstance(result, TimeoutResult)
    assert poller.state is JobState.TIMED_OUT
    assert adapter.polls == 3
    assert adapter.cancel_calls == ["pred-1"]


@pytest.mark.asyncio
async def test_hanging_status_call_is_cut_off_at_deadline() -> None:
    adapter = HangingPollProvider(
        ["succeeded"], output_urls=("https://cdn.test/a.png",), clock=utcnow
    )
    poller = JobPoller(adapter)
    handle = await _submit(adapter)
    loop = asyncio.get_running_loop()
    started = loop.time()

    result = await poller.poll_until_terminal(handle, poll_interval_seconds=0.05, timeout_seconds=0.3)

    assert isinstance(result, TimeoutResult)
    assert loop.time() - started < 1.0
    assert poller.state is JobState.TIMED_OUT
    assert adapter.cancel_calls == ["pred-1"]


@pytest.mark.asyncio
async def test_cancel_failure_is_not_raised() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(["processing"], clock=clock, cancel_error=RuntimeError("boom"))
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(
        await _submit(adapter), poll_interval_seconds=5, timeout_seconds=10
    )

    assert isinstance(result, TimeoutResult)
    assert adapter.cancel_calls == ["pred-1"]


@pytest.mark.asyncio
async def test_unknown_status_keeps_polling() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(
        ["warming_up", "succeeded"], output_urls=("https://cdn.test/a.png",), clock=clock
    )
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    result = await poller.poll_until_terminal(
        await _submit(adapter), poll_interval_seconds=2, timeout_seconds=60
    )

    assert isinstance(result, RemoteResult)
    assert poller.ticks == 2


@pytest.mark.asyncio
async def test_poll_error_marks_failed_cancels_and_propagates() -> None:
    clock = FakeClock()
    adapter = BrokenPollProvider(["processing"], clock=clock)
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)

    with pytest.raises(ProviderError):
        await poller.poll_until_terminal(
            await _submit(adapter), poll_interval_seconds=3, timeout_seconds=30
        )

    assert poller.state is JobState.FAILED
    assert adapter.cancel_calls == ["pred-1"]


@pytest.mark.asyncio
async def test_caller_cancellation_stops_polling_and_cancels_upstream() -> None:
    adapter = ScriptedJobProvider(["processing"], clock=utcnow)
    poller = JobPoller(adapter)
    handle = await _submit(adapter)

    task = asyncio.create_task(
        poller.poll_until_terminal(handle, poll_interval_seconds=30, timeout_seconds=120)
    )
    while adapter.polls == 0:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    for _ in range(20):
        if adapter.cancel_calls:
            break
        await asyncio.sleep(0)

    assert poller.state is JobState.CANCELLED
    assert adapter.polls == 1
    assert adapter.cancel_calls == ["pred-1"]


@pytest.mark.asyncio
async def test_poller_is_single_use() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(["succeeded"], clock=clock)
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)
    await poller.poll_until_terminal(await _submit(adapter), poll_interval_seconds=1, timeout_seconds=5)

    with pytest.raises(RuntimeError):
        await poller.poll_until_terminal(
            await _submit(adapter), poll_interval_seconds=1, timeout_seconds=5
        )


@pytest.mark.asyncio
async def test_poller_rejects_foreign_handle() -> None:
    clock = FakeClock()
    adapter = ScriptedJobProvider(["succeeded"], clock=clock)
    poller = JobPoller(adapter, clock=clock, sleep=clock.sleep)
    handle = ProviderJobHandle(provider_id="gemini", external_job_id="x", submitted_at=clock())

    with pytest.raises(ValueError):
        await poller.poll_until_terminal(handle, poll_interval_seconds=1, timeout_seconds=5)
