import logging
from typing import Dict, List, Optional, Union

from surfacegen.core.config import settings
from surfacegen.core.constants import MERGED_OUTPUT_MARKERS
from surfacegen.models.schemas import (
    DownloadManifest,
    FileBreakdown,
    MultiFilePreview,
    PointRecord,
    ResultSnapshot,
    SingleFilePreview,
)

logger = logging.getLogger(__name__)

Preview = Union[SingleFilePreview, MultiFilePreview]


def _single_total(p: SingleFilePreview) -> int:
    return p.total_points or len(p.preview_points)


def _breakdown(p: SingleFilePreview) -> FileBreakdown:
    return FileBreakdown(
        filename=p.file_info.filename if p.file_info else None,
        total_points=_single_total(p),
        preview_points=len(p.preview_points),
    )


def merge(
    job_id: Optional[str],
    preview: Optional[Preview],
    manifest: Optional[DownloadManifest],
    *,
    preview_loading: bool = False,
    point_limit: Optional[int] = None,
) -> ResultSnapshot:
    """Combine a preview and a download manifest into one ResultSnapshot. Pure: same inputs, equal output.

    Multi-file previews report the merged total when the service produced a
    merged variant, else the sum over files; display points come from the
    merged variant when it has any, else from the files in order.
    """
    limit = settings.preview_point_limit if point_limit is None else point_limit
    total = 0
    per_file: tuple = ()
    points: List[PointRecord] = []

    if isinstance(preview, SingleFilePreview):
        total = _single_total(preview)
        per_file = (_breakdown(preview),)
        points = list(preview.preview_points)
    elif isinstance(preview, MultiFilePreview):
        per_file = tuple(_breakdown(f) for f in preview.files)
        merged = preview.merged
        if merged is not None and _single_total(merged) > 0:
            total = _single_total(merged)
        else:
            total = sum(b.total_points for b in per_file)
        if merged is not None and merged.preview_points:
            points = list(merged.preview_points)
        else:
            for f in preview.files:
                points.extend(f.preview_points)

    return ResultSnapshot(
        job_id=job_id,
        preview_loading=preview_loading,
        preview=preview,
        preview_available=preview is not None and preview.has_data(),
        total_points=total,
        per_file=per_file,
        points=tuple(points[:limit]),
        download_urls=dict(manifest.download_urls) if manifest else {},
        expires_at=manifest.expires_at if manifest else None,
    )


class ResultAggregator:
    """Holds the ResultSnapshot the view reads. Every change swaps in a new snapshot; nothing is edited in place.
    Why available: Preview and download links arrive at different times; readers must never see one without the other."""

    def __init__(self, point_limit: Optional[int] = None):
        self._point_limit = point_limit
        self._snapshot = ResultSnapshot()

    @property
    def snapshot(self) -> ResultSnapshot:
        return self._snapshot

    def reset(self, job_id: Optional[str] = None) -> ResultSnapshot:
        self._snapshot = ResultSnapshot(job_id=job_id)
        return self._snapshot

    def begin_loading(self, job_id: str) -> ResultSnapshot:
        """Mark preview loading for job_id so the view can show a spinner before any data exists."""
        self._snapshot = merge(job_id, None, None, preview_loading=True, point_limit=self._point_limit)
        logger.debug("preview_loading", extra={"job_id": job_id})
        return self._snapshot

    def publish(
        self,
        job_id: str,
        preview: Optional[Preview],
        manifest: Optional[DownloadManifest],
    ) -> ResultSnapshot:
        """Replace the snapshot with the final preview and manifest for job_id; always clears preview loading."""
        self._snapshot = merge(job_id, preview, manifest, preview_loading=False, point_limit=self._point_limit)
        logger.info(
            "results_published",
            extra={
                "job_id": job_id,
                "preview_available": self._snapshot.preview_available,
                "total_points": self._snapshot.total_points,
                "files": len(self._snapshot.download_urls),
            },
        )
        return self._snapshot

    def downloadable_files(self, merge_enabled: bool = False) -> Dict[str, str]:
        """Download entries to offer; with merged outputs only the merged/output files are listed."""
        urls = self._snapshot.download_urls
        if not merge_enabled:
            return dict(urls)
        return {
            name: url
            for name, url in urls.items()
            if any(marker in name for marker in MERGED_OUTPUT_MARKERS)
        }
