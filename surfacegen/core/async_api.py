"""Awaitable facade over the blocking HTTP client for use on the event loop."""
import asyncio
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from surfacegen.core.http_client import SurfaceGenClient
from surfacegen.models.schemas import (
    DownloadManifest,
    JobStatusResponse,
    ProcessingConfig,
    UploadResponse,
)


class AsyncJobApi:
    """Runs each SurfaceGenClient call in a worker thread so the loop never blocks.
    Why available: The poller and reconciler await these; tests swap in a fake with the same coroutine methods."""

    def __init__(self, client: SurfaceGenClient):
        self.client = client

    async def submit_job(
        self,
        files: Sequence[Union[str, Path]],
        config: ProcessingConfig,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> UploadResponse:
        callback = None
        if on_progress is not None:
            loop = asyncio.get_running_loop()

            # Progress is reported from the upload thread; hand it back to the loop thread.
            def callback(pct: int) -> None:
                loop.call_soon_threadsafe(on_progress, pct)

        return await asyncio.to_thread(self.client.submit_job, files, config, callback)

    async def get_job_status(self, job_id: str) -> JobStatusResponse:
        return await asyncio.to_thread(self.client.get_job_status, job_id)

    async def get_job_preview(self, job_id: str):
        return await asyncio.to_thread(self.client.get_job_preview, job_id)

    async def get_download_manifest(self, job_id: str, expiry_hours: Optional[int] = None) -> DownloadManifest:
        return await asyncio.to_thread(self.client.get_download_manifest, job_id, expiry_hours)

    async def fetch_raw(self, url: str) -> str:
        return await asyncio.to_thread(self.client.fetch_raw, url)

    async def download_file(self, url: str, dest_dir: Union[str, Path], filename: Optional[str] = None) -> Path:
        return await asyncio.to_thread(self.client.download_file, url, dest_dir, filename)
