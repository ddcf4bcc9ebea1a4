"""Retry helper for flaky storage operations."""

import logging
import time
from typing import Callable, Tuple, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def retry_with_backoff(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    delay: float = 0.5,
    backoff: float = 2.0,
    exceptions: Tuple[type, ...] = (OSError,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute `operation`, retrying with exponential backoff. The last failure is re-raised."""
    for attempt in range(attempts):
        try:
            return operation()
        except exceptions as exc:  # type: ignore[misc]
            if attempt == attempts - 1:
                raise
            logger.warning(f"Attempt {attempt + 1}/{attempts} failed: {exc}; retrying in {delay:.1f}s")
            sleep(delay)
            delay *= backoff
    raise RuntimeError("retry_with_backoff called with attempts < 1")
