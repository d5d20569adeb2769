"""CodecPort — abstract interface for media conversion and cutting."""

from abc import ABC, abstractmethod


class CodecPort(ABC):
    @abstractmethod
    def load(self) -> None:
        """Allocate the codec working area. Idempotent."""

    @abstractmethod
    def convert(self, data: bytes, mime_hint: str, sample_rate: int = 16000) -> bytes:
        """Convert an arbitrary media byte stream to mono compressed audio."""

    @abstractmethod
    def probe_duration(self, data: bytes) -> float:
        """Return the stream duration in seconds. Raises DurationProbeError."""

    @abstractmethod
    def cut(self, data: bytes, start: float, end: float) -> bytes:
        """Return the audio between ``start`` and ``end`` seconds."""

    @abstractmethod
    def clear(self) -> None:
        """Light cleanup: drop intermediate files, keep the working area."""

    @abstractmethod
    def release(self) -> None:
        """Full cleanup: tear down the working area. ``load`` re-allocates it."""

    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether the working area is currently allocated."""
