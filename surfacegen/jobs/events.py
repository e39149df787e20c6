import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from surfacegen.models.schemas import Job, ResultSnapshot

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    UPLOAD_PROGRESS = "upload_progress"
    STATUS = "status"
    PREVIEW_LOADING = "preview_loading"
    COMPLETED = "completed"
    FAILED = "failed"
    PREVIEW_READY = "preview_ready"
    PREVIEW_UNAVAILABLE = "preview_unavailable"


@dataclass(frozen=True)
class JobEvent:
    """One lifecycle notification for the view layer (progress bar, toasts, preview panel)."""

    kind: EventKind
    job_id: Optional[str] = None
    job: Optional[Job] = None
    progress: Optional[int] = None
    error: Optional[Exception] = None
    snapshot: Optional[ResultSnapshot] = None


Listener = Callable[[JobEvent], None]


class EventBus:
    """Synchronous fan-out of JobEvents on the event-loop thread. A failing listener is logged and skipped."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: JobEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning("listener_failed", exc_info=True, extra={"kind": event.kind.value, "job_id": event.job_id})
