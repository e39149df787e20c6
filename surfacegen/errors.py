from typing import Optional


class SurfaceGenError(Exception):
    """Base class for every error raised by the job client."""


class ValidationError(SurfaceGenError):
    """Submission rejected before any request is made (no files, bad extension, no output format).
    Why available: Lets the caller show an inline message without touching the network."""


class TransportError(SurfaceGenError):
    """HTTP request failed, or returned a non-2xx status after the single 502/503 retry.
    Why available: One exception type for callers regardless of whether requests raised or the server answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    def user_message(self) -> str:
        """Backend's detail when it sent one, else the generic message."""
        return self.detail or str(self)


class JobFailed(SurfaceGenError):
    """Backend reported the job as failed (or deleted)."""

    GENERIC_MESSAGE = "Processing failed"

    def __init__(self, job_id: str, message: Optional[str] = None):
        super().__init__(message or self.GENERIC_MESSAGE)
        self.job_id = job_id
        self.message = message or self.GENERIC_MESSAGE


class PreviewUnavailable(SurfaceGenError):
    """Preview retries exhausted and no usable fallback source. Degraded state, never a job failure."""

    def __init__(self, job_id: str, reason: str):
        super().__init__(f"No preview available for job {job_id}: {reason}")
        self.job_id = job_id
        self.reason = reason


class PollingStopped(SurfaceGenError):
    """Polling was stopped or replaced before the tracked job reached a terminal state."""

    def __init__(self, job_id: Optional[str] = None):
        super().__init__(f"Polling for job {job_id} stopped before it finished" if job_id else "Polling stopped")
        self.job_id = job_id
