"""Fixed-interval polling of asynchronous provider jobs.

A :class:`JobPoller` drives one :class:`ProviderJobHandle` through
``SUBMITTED -> POLLING -> {SUCCEEDED, FAILED, TIMED_OUT, CANCELLED}``.
The deadline is measured from ``handle.submitted_at`` so slow poll
responses cannot stretch it. The interval is fixed: provider latency
reflects inference time, not load.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..providers.providers_base import AsyncJobProviderAdapter
from .generation_models import (
    TERMINAL_STATES,
    FailedResult,
    JobState,
    ProviderJobHandle,
    ProviderResult,
    RemoteResult,
    TimeoutResult,
    utcnow,
)

logger = logging.getLogger(__name__)

CANCEL_TIMEOUT_SECONDS = 5.0


@dataclass(slots=True)
class JobPoller:
    """Poll a single provider job until it reaches a terminal state.

    Instances are single-use: a poller owns exactly one handle.
    """

    adapter: AsyncJobProviderAdapter
    clock: Callable[[], datetime] = utcnow
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    cancel_timeout_seconds: float = CANCEL_TIMEOUT_SECONDS
    log: logging.Logger = field(default_factory=lambda: logger)
    state: JobState = field(default=JobState.SUBMITTED, init=False)
    ticks: int = field(default=0, init=False)
    _handle: ProviderJobHandle | None = field(default=None, init=False, repr=False)
    _background: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    async def poll_until_terminal(
        self,
        handle: ProviderJobHandle,
        *,
        poll_interval_seconds: float,
        timeout_seconds: float,
    ) -> ProviderResult:
        if self._handle is not None:
            raise RuntimeError("JobPoller instances poll exactly one handle")
        if handle.provider_id != self.adapter.provider_id:
            raise ValueError(
                f"handle belongs to '{handle.provider_id}', not '{self.adapter.provider_id}'"
            )
        if poll_interval_seconds < 0 or timeout_seconds <= 0:
            raise ValueError("poll interval must be >= 0 and timeout must be positive")

        self._handle = handle
        deadline = handle.submitted_at + timedelta(seconds=timeout_seconds)
        self.state = JobState.POLLING
        self.log.info(
            "poller.start",
            extra={
                "provider": handle.provider_id,
                "external_job_id": handle.external_job_id,
                "interval_seconds": poll_interval_seconds,
                "timeout_seconds": timeout_seconds,
            },
        )

        try:
            while True:
                remaining = (deadline - self.clock()).total_seconds()
                if remaining <= 0:
                    return await self._time_out(handle, timeout_seconds)

                try:
                    snapshot = await asyncio.wait_for(
                        self.adapter.poll_status(handle), timeout=remaining
                    )
                except asyncio.TimeoutError:
                    self.ticks += 1
                    return await self._time_out(handle, timeout_seconds)
                self.ticks += 1
                # a status that lands after the deadline does not count
                if self.clock() >= deadline:
                    return await self._time_out(handle, timeout_seconds)
                state = self.adapter.classify(snapshot.status)

                if state is JobState.SUCCEEDED:
                    self._finish(handle, JobState.SUCCEEDED)
                    return snapshot.output or RemoteResult(image_urls=(), provider_id=handle.provider_id)
                if state is JobState.FAILED:
                    self._finish(handle, JobState.FAILED)
                    return FailedResult(
                        reason=snapshot.error or f"job {snapshot.status}",
                        provider_id=handle.provider_id,
                    )
                if state is JobState.CANCELLED:
                    self._finish(handle, JobState.CANCELLED)
                    return FailedResult(
                        reason=snapshot.error or "job was cancelled by the provider",
                        provider_id=handle.provider_id,
                    )
                if state is None:
                    self.log.warning(
                        "poller.status.unknown",
                        extra={
                            "provider": handle.provider_id,
                            "external_job_id": handle.external_job_id,
                            "status": snapshot.status,
                        },
                    )

                remaining = (deadline - self.clock()).total_seconds()
                if remaining <= 0:
                    return await self._time_out(handle, timeout_seconds)
                await self.sleep(min(poll_interval_seconds, remaining))
        except asyncio.CancelledError:
            self.state = JobState.CANCELLED
            self.log.info(
                "poller.cancelled",
                extra={
                    "provider": handle.provider_id,
                    "external_job_id": handle.external_job_id,
                    "ticks": self.ticks,
                },
            )
            task = asyncio.get_running_loop().create_task(self._cancel_upstream(handle))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            raise
        except Exception:
            self.state = JobState.FAILED
            self.log.exception(
                "poller.tick.error",
                extra={"provider": handle.provider_id, "external_job_id": handle.external_job_id},
            )
            await self._cancel_upstream(handle)
            raise

    async def _time_out(self, handle: ProviderJobHandle, timeout_seconds: float) -> TimeoutResult:
        self.state = JobState.TIMED_OUT
        self.log.warning(
            "poller.timeout",
            extra={
                "provider": handle.provider_id,
                "external_job_id": handle.external_job_id,
                "ticks": self.ticks,
                "timeout_seconds": timeout_seconds,
            },
        )
        await self._cancel_upstream(handle)
        return TimeoutResult(provider_id=handle.provider_id, timeout_seconds=timeout_seconds)

    async def _cancel_upstream(self, handle: ProviderJobHandle) -> None:
        """Best-effort provider cancel; failures are logged, never raised."""
        try:
            await asyncio.wait_for(self.adapter.cancel(handle), timeout=self.cancel_timeout_seconds)
        except Exception as exc:
            self.log.warning(
                "poller.cancel.failed",
                extra={
                    "provider": handle.provider_id,
                    "external_job_id": handle.external_job_id,
                    "error": repr(exc),
                },
            )

    def _finish(self, handle: ProviderJobHandle, state: JobState) -> None:
        self.state = state
        self.log.info(
            "poller.finished",
            extra={
                "provider": handle.provider_id,
                "external_job_id": handle.external_job_id,
                "state": state.value,
                "ticks": self.ticks,
            },
        )
