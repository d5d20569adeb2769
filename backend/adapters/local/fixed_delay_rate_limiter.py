"""FixedDelayRateLimiter — unconditional pause between transcription batches."""

import logging
import time
from typing import Callable

from ports.rate_limiter import RateLimiterPort

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 60.0


class FixedDelayRateLimiter(RateLimiterPort):
    """Sleeps a fixed time after every batch but the last. Not adaptive."""

    def __init__(self, delay_seconds: float = DEFAULT_DELAY_SECONDS, sleep: Callable[[float], None] = time.sleep):
        self._delay = delay_seconds
        self._sleep = sleep

    def cool_down(self, batch_number: int) -> None:
        if self._delay <= 0:
            return
        logger.info(f"Waiting {self._delay:g} seconds before batch {batch_number + 1}")
        self._sleep(self._delay)
