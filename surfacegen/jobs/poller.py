import asyncio
import logging
from enum import Enum
from typing import Optional, Set, Union

from surfacegen.core.config import settings
from surfacegen.errors import JobFailed
from surfacegen.jobs.aggregator import ResultAggregator
from surfacegen.jobs.events import EventBus, EventKind, JobEvent
from surfacegen.jobs.preview import PreviewReconciler
from surfacegen.jobs.session import PollingSession, SessionOwner
from surfacegen.models.schemas import Job, JobStatus, JobStatusResponse

logger = logging.getLogger(__name__)

DELETED_MESSAGE = "Job was deleted"


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"


class StatusPoller:
    """Polls one job's status on a fixed interval and drives it to a terminal state.

    Owns the only status timer. Ticks fire on the interval whether or not the
    previous tick's request has returned; a tick that sees ``completed`` or
    ``failed`` cancels the timer before awaiting anything else, and every tick
    re-checks that its session is still current before touching state.
    """

    def __init__(
        self,
        api,
        aggregator: ResultAggregator,
        reconciler: PreviewReconciler,
        *,
        events: Optional[EventBus] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.api = api
        self.aggregator = aggregator
        self.reconciler = reconciler
        self.events = events or EventBus()
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.poll_interval_seconds
        self.sessions = SessionOwner()
        self.state = PollerState.IDLE
        self.job: Optional[Job] = None
        self._seen_processing = False
        self._ticks: Set[asyncio.Task] = set()

    # -------------------------
    # Session lifecycle
    # -------------------------

    def start(self, job: Union[Job, str]) -> PollingSession:
        """Start polling job; any previous session is torn down first. Must be called on the event loop."""
        if isinstance(job, str):
            job = Job(job_id=job)
        session = self.sessions.replace(job.job_id)
        self.job = job
        self.state = PollerState.POLLING
        self._seen_processing = False
        self._schedule(session)
        logger.info("polling_started", extra={"job_id": job.job_id, "generation": session.generation})
        return session

    def stop(self) -> None:
        """Stop polling (idempotent). In-flight ticks become no-ops."""
        session = self.sessions.clear()
        if session is not None and self.state == PollerState.POLLING:
            self.state = PollerState.IDLE
            logger.info("polling_stopped", extra={"job_id": session.job_id})

    async def close(self) -> None:
        """Stop polling and cancel any tick (and preview hand-off) still running."""
        self.stop()
        ticks = list(self._ticks)
        for t in ticks:
            t.cancel()
        if ticks:
            await asyncio.gather(*ticks, return_exceptions=True)

    async def wait(self) -> Optional[Job]:
        """Final Job of the current session once its results are in, or None if it was stopped first."""
        session = self.sessions.current
        if session is None or session.outcome is None:
            return None
        return await asyncio.shield(session.outcome)

    # -------------------------
    # Timer
    # -------------------------

    def _schedule(self, session: PollingSession) -> None:
        loop = asyncio.get_running_loop()
        session.timer = loop.call_later(self.interval_seconds, self._fire, session)

    def _fire(self, session: PollingSession) -> None:
        if not self.sessions.is_live(session) or session.timer is None:
            return
        # Re-arm first so the cadence does not depend on how long the request takes.
        self._schedule(session)
        task = asyncio.get_running_loop().create_task(self._tick(session))
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    # -------------------------
    # Ticks
    # -------------------------

    async def _tick(self, session: PollingSession) -> None:
        try:
            status = await self.api.get_job_status(session.job_id)
        except Exception:
            logger.warning("status_poll_failed", exc_info=True, extra={"job_id": session.job_id})
            return

        if not self.sessions.is_live(session) or self.state != PollerState.POLLING:
            logger.debug("stale_tick_ignored", extra={"job_id": session.job_id, "generation": session.generation})
            return

        self._apply(session, status)

        if self.state == PollerState.COMPLETED:
            await self._hand_off(session)

    def _apply(self, session: PollingSession, status: JobStatusResponse) -> None:
        """Fold one status response into the Job. Synchronous, so the terminal short-circuit runs before any await."""
        prev = self.job
        progress = status.progress
        if progress is not None and prev is not None and prev.progress is not None:
            progress = max(prev.progress, progress)
        elif progress is None and prev is not None:
            progress = prev.progress

        if status.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.DELETED):
            session.cancel_timer()

        error_message = None
        if status.status == JobStatus.FAILED:
            error_message = status.error_message or JobFailed.GENERIC_MESSAGE
        elif status.status == JobStatus.DELETED:
            error_message = status.error_message or DELETED_MESSAGE

        job = Job(job_id=session.job_id, status=status.status, progress=progress, error_message=error_message)
        self.job = job
        self.events.emit(JobEvent(EventKind.STATUS, job_id=job.job_id, job=job))

        if job.status == JobStatus.PROCESSING and not self._seen_processing:
            self._seen_processing = True
            self.events.emit(
                JobEvent(EventKind.PREVIEW_LOADING, job_id=job.job_id, snapshot=self.aggregator.begin_loading(job.job_id))
            )

        if job.status == JobStatus.COMPLETED:
            self.state = PollerState.COMPLETED
            logger.info("job_completed", extra={"job_id": job.job_id})
            self.events.emit(JobEvent(EventKind.COMPLETED, job_id=job.job_id, job=job))
        elif job.is_terminal:
            self.state = PollerState.FAILED
            err = JobFailed(job.job_id, error_message)
            logger.warning("job_failed", extra={"job_id": job.job_id, "status": job.status.value, "error": error_message})
            self.events.emit(JobEvent(EventKind.FAILED, job_id=job.job_id, job=job, error=err))
            session.resolve(job)

    async def _hand_off(self, session: PollingSession) -> None:
        def is_live() -> bool:
            return self.sessions.is_live(session)

        try:
            result = await self.reconciler.reconcile(session.job_id, is_live=is_live)
        except Exception:
            logger.error("preview_reconcile_failed", exc_info=True, extra={"job_id": session.job_id})
            if not is_live():
                return
            snapshot = self.aggregator.publish(session.job_id, None, None)
            self.events.emit(JobEvent(EventKind.PREVIEW_UNAVAILABLE, job_id=session.job_id, snapshot=snapshot))
            session.resolve(self.job)
            return

        if not result.published or not is_live():
            return
        snapshot = self.aggregator.snapshot
        if result.unavailable is not None:
            self.events.emit(
                JobEvent(EventKind.PREVIEW_UNAVAILABLE, job_id=session.job_id, error=result.unavailable, snapshot=snapshot)
            )
        else:
            self.events.emit(JobEvent(EventKind.PREVIEW_READY, job_id=session.job_id, snapshot=snapshot))
        session.resolve(self.job)
