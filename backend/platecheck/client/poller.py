"""
Client-side polling for analysis jobs.

A JobPoller asks for a job's status on a fixed interval while a timeout runs
alongside it. The first of complete / failed / timeout / cancel ends the
lifecycle; at that point both timers are torn down together and every later
event is ignored, so a timeout can never fire after a result was surfaced.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import client_settings
from ..logger import logger
from .errors import AnalysisClientError, TransientClientError

TIMEOUT_ERROR = "TIMEOUT_ERROR"
ANALYSIS_FAILED = "ANALYSIS_FAILED"
POLL_ERROR = "POLL_ERROR"

FetchJob = Callable[[str], Awaitable[Dict[str, Any]]]


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    TERMINATED = "terminated"


class OutcomeKind(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollOutcome:
    kind: OutcomeKind
    job_id: str
    result: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    polls: int = 0

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.COMPLETE


class JobPoller:
    def __init__(
        self,
        job_id: str,
        fetch_job: FetchJob,
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        on_outcome: Optional[Callable[[PollOutcome], None]] = None,
    ) -> None:
        self.job_id = job_id
        self.interval = client_settings.POLL_INTERVAL_SECONDS if interval is None else interval
        self.timeout = client_settings.POLL_TIMEOUT_SECONDS if timeout is None else timeout
        self._fetch_job = fetch_job
        self._on_outcome = on_outcome
        self.state = PollerState.IDLE
        self.polls = 0
        self._outcome: Optional["asyncio.Future[PollOutcome]"] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None

    async def run(self) -> PollOutcome:
        if self.state is not PollerState.IDLE:
            raise RuntimeError(f"Poller for job {self.job_id} already started")

        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()
        self.state = PollerState.POLLING
        self._timeout_handle = loop.call_later(self.timeout, self._on_timeout)
        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info(
            f"Polling job {self.job_id}",
            extra={"job_id": self.job_id, "interval": self.interval, "timeout": self.timeout},
        )

        try:
            return await self._outcome
        except asyncio.CancelledError:
            # the awaiting task itself went away; treat it as an explicit cancel
            self.cancel()
            raise

    def cancel(self) -> bool:
        """Abandon the job. Returns False if polling had already ended."""
        return self._finish(PollOutcome(kind=OutcomeKind.CANCELLED, job_id=self.job_id, polls=self.polls))

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        while self.state is PollerState.POLLING:
            # fixed rate: fetch latency does not stretch the period, and an
            # overrun fetch is followed by one immediate tick, not a burst
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            if self.state is not PollerState.POLLING:
                return
            next_tick = max(next_tick + self.interval, loop.time())

            self.polls += 1
            try:
                job = await self._fetch_job(self.job_id)
            except TransientClientError as e:
                logger.warning(
                    f"Poll {self.polls} for job {self.job_id} failed, will retry: {e}",
                    extra={"job_id": self.job_id, "error_code": e.code},
                )
                continue
            except AnalysisClientError as e:
                self._finish(self._error_outcome(OutcomeKind.FAILED, e.code, e.message))
                return
            except Exception as e:
                logger.error(f"Polling job {self.job_id} crashed: {e}", extra={"job_id": self.job_id})
                self._finish(self._error_outcome(OutcomeKind.FAILED, POLL_ERROR, str(e)))
                return

            # the timeout may have fired while the request was in flight
            if self.state is not PollerState.POLLING:
                return

            status = job.get("status")
            if status == "complete":
                self._finish(
                    PollOutcome(kind=OutcomeKind.COMPLETE, job_id=self.job_id, result=job.get("result"), polls=self.polls)
                )
                return
            if status == "failed":
                reason = job.get("failureReason") or "Analysis failed"
                self._finish(self._error_outcome(OutcomeKind.FAILED, ANALYSIS_FAILED, reason))
                return

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        self._finish(
            self._error_outcome(
                OutcomeKind.TIMEOUT,
                TIMEOUT_ERROR,
                f"No result for job {self.job_id} after {self.timeout}s",
            )
        )

    def _error_outcome(self, kind: OutcomeKind, code: str, message: str) -> PollOutcome:
        return PollOutcome(kind=kind, job_id=self.job_id, error_code=code, error_message=message, polls=self.polls)

    def _finish(self, outcome: PollOutcome) -> bool:
        if self.state is not PollerState.POLLING:
            return False
        self.state = PollerState.TERMINATED

        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        if self._tick_task is not None and self._tick_task is not asyncio.current_task():
            self._tick_task.cancel()

        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(outcome)

        log = logger.info if outcome.ok else logger.warning
        log(
            f"Polling for job {self.job_id} ended: {outcome.kind.value}",
            extra={"job_id": self.job_id, "outcome": outcome.kind.value, "polls": outcome.polls, "error_code": outcome.error_code},
        )
        if self._on_outcome is not None:
            self._on_outcome(outcome)
        return True
