import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from surfacegen.core.async_api import AsyncJobApi
from surfacegen.core.config import Settings, settings as default_settings
from surfacegen.core.http_client import get_client
from surfacegen.errors import JobFailed, PollingStopped
from surfacegen.jobs.aggregator import ResultAggregator
from surfacegen.jobs.events import EventBus, EventKind, JobEvent, Listener
from surfacegen.jobs.poller import PollerState, StatusPoller
from surfacegen.jobs.preview import PreviewReconciler
from surfacegen.jobs.upload import UploadInitiator, validate_submission
from surfacegen.models.schemas import Job, JobStatus, ProcessingConfig, ResultSnapshot

logger = logging.getLogger(__name__)


class JobOrchestrator:
    """One mounted job-tracking context: upload, poll, reconcile preview, expose a ResultSnapshot.

    Use as an async context manager; leaving the block tears down the polling
    timer and any in-flight ticks exactly once.
    """

    def __init__(self, api=None, *, config: Optional[Settings] = None):
        cfg = config or default_settings
        if api is None:
            api = AsyncJobApi(get_client())
        self.api = api
        self.events = EventBus()
        self.aggregator = ResultAggregator(point_limit=cfg.preview_point_limit)
        self.reconciler = PreviewReconciler(
            api,
            self.aggregator,
            max_attempts=cfg.preview_max_attempts,
            retry_delay_seconds=cfg.preview_retry_delay_seconds,
            expiry_hours=cfg.download_expiry_hours,
            point_limit=cfg.preview_point_limit,
        )
        self.poller = StatusPoller(
            api,
            self.aggregator,
            self.reconciler,
            events=self.events,
            interval_seconds=cfg.poll_interval_seconds,
        )
        self.uploader = UploadInitiator(api)
        self.upload_progress = 0
        self._closed = False

    async def __aenter__(self) -> "JobOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------
    # Read side
    # -------------------------

    @property
    def snapshot(self) -> ResultSnapshot:
        return self.aggregator.snapshot

    @property
    def job(self) -> Optional[Job]:
        return self.poller.job

    @property
    def state(self) -> PollerState:
        return self.poller.state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.events.subscribe(listener)

    # -------------------------
    # Commands
    # -------------------------

    def _on_upload_progress(self, pct: int) -> None:
        # A 502/503 retry re-sends the body from zero; keep the bar monotonic.
        if pct <= self.upload_progress:
            return
        self.upload_progress = pct
        self.events.emit(JobEvent(EventKind.UPLOAD_PROGRESS, progress=pct))

    async def submit(self, files: Sequence[Union[str, Path]], config: ProcessingConfig) -> Job:
        """Validate, upload, and start polling the new job. Raises ValidationError or TransportError; nothing is retried."""
        validate_submission(files, config)
        self.poller.stop()
        self.aggregator.reset()
        self.upload_progress = 0
        job = await self.uploader.submit(files, config, self._on_upload_progress)
        self.watch(job)
        return job

    def watch(self, job: Union[Job, str]) -> None:
        """Track an already-submitted job (replaces whatever was being tracked)."""
        job_id = job.job_id if isinstance(job, Job) else job
        if self.aggregator.snapshot.job_id != job_id:
            self.aggregator.reset(job_id)
        self.poller.start(job)

    def stop(self) -> None:
        self.poller.stop()

    async def wait(self) -> Job:
        """Wait for the tracked job to finish and its results to be published.
        Raises JobFailed on failure or deletion, PollingStopped if polling ends first."""
        job = await self.poller.wait()
        if job is None:
            raise PollingStopped(self.job.job_id if self.job else None)
        if job.status != JobStatus.COMPLETED:
            raise JobFailed(job.job_id, job.error_message)
        return job

    async def download_all(self, dest_dir: Union[str, Path], merge_enabled: bool = False) -> List[Path]:
        """Download every offered result file into dest_dir, one after another."""
        written: List[Path] = []
        for filename, url in self.aggregator.downloadable_files(merge_enabled).items():
            written.append(await self.api.download_file(url, dest_dir, filename))
        return written

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.poller.close()
        logger.debug("orchestrator_closed")
