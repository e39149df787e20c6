import logging
import uuid

import requests

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"


def new_request_id() -> str:
    return str(uuid.uuid4())


def log_response(response: requests.Response, *args, **kwargs) -> None:
    """requests response hook: log request id, path, method, status and latency for every call."""
    req = response.request
    rid = req.headers.get(REQUEST_ID_HEADER, "unknown") if req is not None else "unknown"
    path = requests.utils.urlparse(response.url).path
    dur_ms = response.elapsed.total_seconds() * 1000.0
    logger.debug(
        "http_request",
        extra={
            "request_id": rid,
            "path": path,
            "method": req.method if req is not None else None,
            "status": response.status_code,
            "latency_ms": round(dur_ms, 2),
        },
    )


def attach_request_timing(session: requests.Session) -> requests.Session:
    """Register log_response on the session (once)."""
    hooks = session.hooks.setdefault("response", [])
    if log_response not in hooks:
        hooks.append(log_response)
    return session
