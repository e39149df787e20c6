"""Polling session record and its single owner: the one place timers are created and torn down."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PollingSession:
    """Job id, generation and timer handle for one polling run.

    ``outcome`` resolves with the final Job when the run ends in a terminal
    state, or with None when the run is stopped or replaced first.
    """

    job_id: str
    generation: int
    timer: Optional[asyncio.TimerHandle] = None
    active: bool = True
    outcome: Optional[asyncio.Future] = field(default=None, repr=False)

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def resolve(self, value) -> None:
        """Set the outcome once; later calls are ignored."""
        if self.outcome is not None and not self.outcome.done():
            self.outcome.set_result(value)


class SessionOwner:
    """Holds the current PollingSession. replace() and clear() cancel the previous timer synchronously, before anything else runs."""

    def __init__(self) -> None:
        self._current: Optional[PollingSession] = None
        self._generation = 0

    @property
    def current(self) -> Optional[PollingSession]:
        return self._current

    @property
    def generation(self) -> int:
        return self._generation

    def replace(self, job_id: str) -> PollingSession:
        self.clear()
        self._generation += 1
        loop = asyncio.get_running_loop()
        session = PollingSession(job_id=job_id, generation=self._generation, outcome=loop.create_future())
        self._current = session
        logger.debug("session_started", extra={"job_id": job_id, "generation": session.generation})
        return session

    def clear(self) -> Optional[PollingSession]:
        """Tear down the current session (idempotent). Returns the session that was torn down, if any."""
        session = self._current
        if session is None:
            return None
        self._current = None
        session.active = False
        session.cancel_timer()
        session.resolve(None)
        logger.debug("session_cleared", extra={"job_id": session.job_id, "generation": session.generation})
        return session

    def is_live(self, session: PollingSession) -> bool:
        """True while session is still the current, un-stopped one. Every async continuation checks this before mutating state."""
        return session.active and self._current is session and session.generation == self._generation
