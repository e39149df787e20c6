"""Preview retrieval after completion: bounded retries against eventual consistency, then raw-file fallback."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Union

from surfacegen.core.config import settings
from surfacegen.core.constants import TABULAR_RESULT_EXTENSION
from surfacegen.errors import PreviewUnavailable
from surfacegen.jobs.aggregator import ResultAggregator
from surfacegen.jobs.tabular import summarize_points
from surfacegen.models.schemas import DownloadManifest, MultiFilePreview, SingleFilePreview
from surfacegen.utils.retry import poll_until

logger = logging.getLogger(__name__)

Preview = Union[SingleFilePreview, MultiFilePreview]


def is_valid_preview(preview: Optional[Preview]) -> bool:
    """Usable preview: at least one point or a positive point count; for multi-file, in any file."""
    return preview is not None and preview.has_data()


@dataclass(frozen=True)
class ReconcileResult:
    job_id: str
    preview: Optional[Preview]
    manifest: Optional[DownloadManifest]
    source: str  # preview | fallback | none
    attempts: int
    unavailable: Optional[PreviewUnavailable] = None
    manifest_error: Optional[Exception] = None
    published: bool = False


class PreviewReconciler:
    """Turns a completed job into a stored preview + manifest, whatever the backend manages to return.
    Why available: The service can report completed before its preview is queryable; this hides that from the view."""

    def __init__(
        self,
        api,
        aggregator: ResultAggregator,
        *,
        max_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        expiry_hours: Optional[int] = None,
        point_limit: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.aggregator = aggregator
        self.max_attempts = max_attempts if max_attempts is not None else settings.preview_max_attempts
        self.retry_delay_seconds = (
            retry_delay_seconds if retry_delay_seconds is not None else settings.preview_retry_delay_seconds
        )
        self.expiry_hours = expiry_hours if expiry_hours is not None else settings.download_expiry_hours
        self.point_limit = point_limit
        self._sleep = sleep

    async def _fetch_manifest(self, job_id: str) -> Tuple[Optional[DownloadManifest], Optional[Exception]]:
        try:
            return await self.api.get_download_manifest(job_id, self.expiry_hours), None
        except Exception as e:
            logger.warning("download_manifest_failed", exc_info=True, extra={"job_id": job_id})
            return None, e

    async def _fallback(
        self, job_id: str, manifest: Optional[DownloadManifest]
    ) -> Tuple[Optional[SingleFilePreview], Optional[PreviewUnavailable]]:
        if manifest is None:
            return None, PreviewUnavailable(job_id, "download manifest unavailable")
        entry = manifest.find_by_extension(TABULAR_RESULT_EXTENSION)
        if entry is None:
            return None, PreviewUnavailable(job_id, f"no {TABULAR_RESULT_EXTENSION} result to read points from")
        filename, url = entry
        try:
            text = await self.api.fetch_raw(url)
        except Exception as e:
            logger.warning("fallback_fetch_failed", exc_info=True, extra={"job_id": job_id, "filename": filename})
            return None, PreviewUnavailable(job_id, f"could not fetch {filename}: {e}")
        preview = summarize_points(text, filename=filename, limit=self.point_limit)
        if not preview.has_data():
            return None, PreviewUnavailable(job_id, f"{filename} has no usable rows")
        logger.info("fallback_preview_built", extra={"job_id": job_id, "filename": filename, "points": preview.total_points})
        return preview, None

    async def reconcile(self, job_id: str, is_live: Callable[[], bool] = lambda: True) -> ReconcileResult:
        """Fetch manifest and preview for a completed job and publish both to the aggregator in one swap.

        The manifest request starts first and runs alongside the preview
        attempts. Nothing is published once is_live() turns False.
        """
        manifest_task = asyncio.ensure_future(self._fetch_manifest(job_id))
        try:
            outcome = await poll_until(
                lambda: self.api.get_job_preview(job_id),
                is_valid=is_valid_preview,
                max_attempts=self.max_attempts,
                delay_seconds=self.retry_delay_seconds,
                keep_going=is_live,
                sleep=self._sleep,
            )
            manifest, manifest_error = await manifest_task
        finally:
            if not manifest_task.done():
                manifest_task.cancel()

        logger.info(
            "preview_attempts_done",
            extra={"job_id": job_id, "attempts": outcome.attempts, "valid": outcome.valid},
        )

        if not is_live():
            return ReconcileResult(job_id, None, manifest, "none", outcome.attempts, manifest_error=manifest_error)

        unavailable = None
        if outcome.valid:
            preview, source = outcome.value, "preview"
        else:
            preview, unavailable = await self._fallback(job_id, manifest)
            source = "fallback" if preview is not None else "none"
            if not is_live():
                return ReconcileResult(job_id, None, manifest, source, outcome.attempts, unavailable, manifest_error)

        if unavailable is not None:
            logger.warning("preview_unavailable", extra={"job_id": job_id, "reason": unavailable.reason})

        self.aggregator.publish(job_id, preview, manifest)
        return ReconcileResult(
            job_id=job_id,
            preview=preview,
            manifest=manifest,
            source=source,
            attempts=outcome.attempts,
            unavailable=unavailable,
            manifest_error=manifest_error,
            published=True,
        )
