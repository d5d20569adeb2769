"""RateLimiterPort — abstract interface for pacing provider requests."""

from abc import ABC, abstractmethod


class RateLimiterPort(ABC):
    @abstractmethod
    def cool_down(self, batch_number: int) -> None:
        """Block between batch ``batch_number`` and the next one."""
