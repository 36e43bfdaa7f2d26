from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERROR_MARKERS = (
    "lock_timeout",
    "rate_limit",
    "too many requests",
    "connection error",
)


def is_transient_error(exc: BaseException) -> bool:
    code = str(getattr(exc, "code", "") or "").lower()
    message = str(exc).lower()
    return any(marker in message or marker == code for marker in TRANSIENT_ERROR_MARKERS)


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    initial_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``attempts`` times, doubling the delay after each
    transient failure. Any other error is raised immediately."""
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=initial_delay),
        retry=retry_if_exception(is_transient_error),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(fn)
