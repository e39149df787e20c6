import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from surfacegen.core.constants import ALLOWED_EXTENSIONS
from surfacegen.errors import ValidationError
from surfacegen.models.schemas import Job, ProcessingConfig

logger = logging.getLogger(__name__)


def validate_submission(files: Sequence[Union[str, Path]], config: ProcessingConfig) -> List[Path]:
    """Reject a submission before any request: no files, missing files, non-LAS/LAZ files, or no output format.
    Validation errors never reach the network."""
    if not files:
        raise ValidationError("Please select files to process")
    paths = [Path(f) for f in files]
    for p in paths:
        if p.suffix.lower() not in ALLOWED_EXTENSIONS:
            raise ValidationError(f"{p.name}: only {', '.join(ALLOWED_EXTENSIONS)} files are supported")
        if not p.is_file():
            raise ValidationError(f"{p}: file not found")
    if not config.output_formats:
        raise ValidationError("Please select at least one output format")
    return paths


class UploadInitiator:
    """Submits files plus config as one multipart upload and returns the new Job. Never retries; re-submission is up to the user."""

    def __init__(self, api):
        self.api = api

    async def submit(
        self,
        files: Sequence[Union[str, Path]],
        config: ProcessingConfig,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> Job:
        paths = validate_submission(files, config)
        logger.info("upload_started", extra={"files": len(paths), "formats": ",".join(config.output_formats)})
        resp = await self.api.submit_job(paths, config, on_progress)
        logger.info("upload_accepted", extra={"job_id": resp.job_id, "status": resp.status.value})
        return Job(job_id=resp.job_id, status=resp.status)
