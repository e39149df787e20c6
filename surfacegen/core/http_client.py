"""HTTP transport for the surface generation API (base URL and timeouts from config)."""
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union
from urllib.parse import unquote, urlparse

import pydantic
import requests
from urllib3 import encode_multipart_formdata

from surfacegen.core.config import settings
from surfacegen.core.constants import UPLOAD_MIME_TYPE
from surfacegen.errors import TransportError
from surfacegen.models.schemas import (
    DownloadManifest,
    JobStatusResponse,
    ProcessingConfig,
    UploadResponse,
    parse_preview,
)
from surfacegen.observability.request_timing import REQUEST_ID_HEADER, attach_request_timing, new_request_id
from surfacegen.utils.retry import with_retry

logger = logging.getLogger(__name__)

# Gateway errors the service returns while a container is cold-starting
RETRY_STATUSES = frozenset({502, 503})

UPLOAD_PATH = "/api/v1/upload/"
JOB_PATH = "/api/v1/jobs/{job_id}"
PREVIEW_PATH = "/api/v1/jobs/{job_id}/preview"
DOWNLOAD_PATH = "/api/v1/download/{job_id}"

ProgressCallback = Callable[[int], None]


class ProgressReader:
    """Read-only view over an encoded request body that reports integer percent sent as it is read.

    requests takes Content-Length from ``__len__``; urllib3 then pulls the body
    through ``read()`` in blocks, so each block read is one progress step.
    """

    def __init__(self, body: bytes, on_progress: Optional[ProgressCallback] = None):
        self._body = body
        self._pos = 0
        self._on_progress = on_progress
        self._last_pct = -1

    def __len__(self) -> int:
        return len(self._body)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self._body) - self._pos
        chunk = self._body[self._pos : self._pos + size]
        self._pos += len(chunk)
        self._report()
        return chunk

    def _report(self) -> None:
        if self._on_progress is None:
            return
        total = len(self._body)
        pct = 100 if total == 0 else int(self._pos * 100 / total)
        if pct != self._last_pct:
            self._last_pct = pct
            self._on_progress(pct)


def _error_detail(resp: requests.Response) -> Optional[str]:
    """Pull FastAPI-style {"detail": ...} out of an error body, else a short text excerpt."""
    try:
        body = resp.json()
    except ValueError:
        text = (resp.text or "").strip()
        return text[:200] or None
    if isinstance(body, dict) and body.get("detail") is not None:
        detail = body["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return None


def filename_from_url(url: str) -> str:
    """Last path segment of a (possibly pre-signed) URL, without the query string."""
    name = unquote(urlparse(url).path.rsplit("/", 1)[-1])
    return name or "download"


class SurfaceGenClient:
    """Blocking client for the processing API. Every call is retried once on 502/503 and raises TransportError otherwise.
    Why available: Single place for base URL, headers, timeouts and error mapping; the async orchestrator runs these calls in worker threads."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        retry_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = (base_url or settings.api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.retry_delay_seconds = (
            retry_delay_seconds if retry_delay_seconds is not None else settings.transport_retry_delay_seconds
        )
        self.session = attach_request_timing(session or requests.Session())
        self.session.headers["Accept"] = "application/json"
        self._sleep = sleep

    def close(self) -> None:
        self.session.close()

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        data_factory: Optional[Callable[[], Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> requests.Response:
        url = self._url(path)

        def _once() -> requests.Response:
            req_headers = dict(headers or {})
            req_headers[REQUEST_ID_HEADER] = new_request_id()
            if data_factory is not None:
                kwargs["data"] = data_factory()
            try:
                resp = self.session.request(method, url, headers=req_headers, timeout=self.timeout, **kwargs)
            except requests.exceptions.RequestException as e:
                raise TransportError(f"{method} {urlparse(url).path} failed: {e}") from e
            if not resp.ok:
                raise TransportError(
                    f"{method} {urlparse(url).path} returned {resp.status_code}",
                    status_code=resp.status_code,
                    detail=_error_detail(resp),
                )
            return resp

        return with_retry(
            _once,
            retries=1,
            backoff_seconds=self.retry_delay_seconds,
            retry_on=(TransportError,),
            retry_if=lambda e: getattr(e, "status_code", None) in RETRY_STATUSES,
            sleep=self._sleep,
        )

    @staticmethod
    def _json(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(
                f"{urlparse(resp.url).path} returned a non-JSON body", status_code=resp.status_code
            ) from e

    def _parse(self, resp: requests.Response, parser: Callable[[Any], Any]) -> Any:
        payload = self._json(resp)
        try:
            return parser(payload)
        except pydantic.ValidationError as e:
            raise TransportError(
                f"{urlparse(resp.url).path} returned an unexpected payload", status_code=resp.status_code, detail=str(e)
            ) from e

    # -------------------------
    # API calls
    # -------------------------

    def submit_job(
        self,
        files: Sequence[Union[str, Path]],
        config: ProcessingConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResponse:
        """POST all files and config fields as one multipart request; on_progress gets 0-100 as the body is sent."""
        fields: list = []
        for f in files:
            p = Path(f)
            fields.append(("files", (p.name, p.read_bytes(), UPLOAD_MIME_TYPE)))
        fields.extend(config.to_form_fields())
        body, content_type = encode_multipart_formdata(fields)

        resp = self._request(
            "POST",
            UPLOAD_PATH,
            data_factory=lambda: ProgressReader(body, on_progress),
            headers={"Content-Type": content_type},
        )
        return self._parse(resp, UploadResponse.model_validate)

    def get_job_status(self, job_id: str) -> JobStatusResponse:
        resp = self._request("GET", JOB_PATH.format(job_id=job_id))
        return self._parse(resp, JobStatusResponse.model_validate)

    def get_job_preview(self, job_id: str):
        """Structured preview; single- or multi-file shape, tagged by parse_preview."""
        resp = self._request("GET", PREVIEW_PATH.format(job_id=job_id))
        return self._parse(resp, parse_preview)

    def get_download_manifest(self, job_id: str, expiry_hours: Optional[int] = None) -> DownloadManifest:
        hours = expiry_hours if expiry_hours is not None else settings.download_expiry_hours
        resp = self._request("GET", DOWNLOAD_PATH.format(job_id=job_id), params={"expiry_hours": hours})
        return self._parse(resp, DownloadManifest.model_validate)

    def fetch_raw(self, url: str) -> str:
        """GET a result file (usually a pre-signed URL) and return its text."""
        resp = self._request("GET", url, headers={"Accept": "*/*"})
        return resp.text

    def download_file(self, url: str, dest_dir: Union[str, Path], filename: Optional[str] = None) -> Path:
        """Stream a result file into dest_dir and return the written path.

        Only the last path segment of ``filename`` is used (manifest keys may
        carry blob prefixes); a name that still escapes dest_dir is refused.
        """
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)
        name = Path(filename.replace("\\", "/")).name if filename else ""
        if name in ("", ".", ".."):
            name = filename_from_url(url)
        out_path = dest / name
        if out_path.resolve().parent != dest.resolve():
            raise TransportError(f"refusing to write {name!r} outside {dest}")
        resp = self._request("GET", url, headers={"Accept": "*/*"}, stream=True)
        try:
            with open(out_path, "wb") as out:
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    if chunk:
                        out.write(chunk)
        except requests.exceptions.RequestException as e:
            out_path.unlink(missing_ok=True)
            raise TransportError(f"download of {out_path.name} interrupted: {e}") from e
        except OSError as e:
            out_path.unlink(missing_ok=True)
            raise TransportError(f"could not write {out_path}: {e}") from e
        finally:
            resp.close()
        logger.info("file_downloaded", extra={"filename": out_path.name, "bytes": out_path.stat().st_size})
        return out_path


_client: Optional[SurfaceGenClient] = None


def get_client() -> SurfaceGenClient:
    """Return a singleton client configured from settings. Used by the CLI and the default orchestrator wiring."""
    global _client
    if _client is None:
        _client = SurfaceGenClient()
    return _client
