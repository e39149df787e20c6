import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Type, TypeVar, Tuple

T = TypeVar("T")

logger = logging.getLogger(__name__)


def with_retry(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    backoff_seconds: float = 0.5,
    retry_on: Optional[Tuple[Type[BaseException], ...]] = (Exception,),
    retry_if: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run fn() with retries and exponential backoff. If retry_on is None, defaults to (Exception,).
    retry_if narrows further: an exception of a retry_on type is re-raised at once when retry_if(exc) is False.
    Why available: Used by the transport to retry a request once on 502/503 without retrying client errors."""
    exc_types: Tuple[Type[BaseException], ...] = retry_on or (Exception,)

    last_err: Optional[BaseException] = None

    for attempt in range(retries + 1):
        try:
            return fn()
        except exc_types as e:
            last_err = e
            if attempt >= retries or (retry_if is not None and not retry_if(e)):
                raise
            sleep_s = backoff_seconds * (2 ** attempt)
            logger.info("retrying", extra={"attempt": attempt + 1, "sleep_s": sleep_s, "error": str(e)})
            sleep(sleep_s)

    # Should be unreachable, but keeps type-checkers happy.
    assert last_err is not None
    raise last_err


@dataclass
class PollOutcome(Generic[T]):
    """Result of poll_until: last value seen, how many attempts ran, whether it satisfied the predicate."""

    value: Optional[T]
    attempts: int
    valid: bool
    last_error: Optional[BaseException] = None


async def poll_until(
    fn: Callable[[], Awaitable[T]],
    *,
    is_valid: Callable[[T], bool],
    max_attempts: int,
    delay_seconds: float,
    keep_going: Optional[Callable[[], bool]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PollOutcome[T]:
    """Await fn() up to max_attempts times with a fixed delay in between, stopping at the first value is_valid accepts.

    An exception from fn() counts as "not valid yet" and is logged, not raised.
    keep_going is checked before every retry; returning False ends the loop
    early (the caller's context went away).
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    value: Optional[T] = None
    last_err: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            await sleep(delay_seconds)
            if keep_going is not None and not keep_going():
                return PollOutcome(value=value, attempts=attempt - 1, valid=False, last_error=last_err)
        try:
            value = await fn()
        except Exception as e:
            last_err = e
            logger.warning("poll_attempt_failed", exc_info=True, extra={"attempt": attempt, "max_attempts": max_attempts})
            continue
        if is_valid(value):
            return PollOutcome(value=value, attempts=attempt, valid=True)
        logger.debug("poll_attempt_not_ready", extra={"attempt": attempt, "max_attempts": max_attempts})

    return PollOutcome(value=value, attempts=max_attempts, valid=False, last_error=last_err)
