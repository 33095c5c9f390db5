import logging
import time
from typing import Callable, Optional, Type, TypeVar, Tuple

T = TypeVar("T")

logger = logging.getLogger(__name__)


def with_retry(
    fn: Callable[[], T],
    *,
    retries: int = 2,
    backoff_seconds: float = 1.0,
    retry_on: Optional[Tuple[Type[BaseException], ...]] = (Exception,),
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Run fn() with retries and exponential backoff. If retry_on is None, defaults to (Exception,).
    Why available: Used by the content generator so transient provider errors (timeouts, 429/5xx) do not fail the job on the first attempt."""
    exc_types: Tuple[Type[BaseException], ...] = retry_on or (Exception,)

    for attempt in range(retries + 1):
        try:
            return fn()
        except exc_types as e:
            if attempt >= retries:
                raise
            sleep_s = backoff_seconds * (2 ** attempt)
            logger.info("retrying after %s (attempt %d/%d, sleep %.1fs)", e.__class__.__name__, attempt + 1, retries, sleep_s)
            (sleep or time.sleep)(sleep_s)

    raise RuntimeError("unreachable")
