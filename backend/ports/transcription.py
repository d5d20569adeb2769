"""TranscriptionPort — abstract interface for speech-to-text providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class TranscriptionPort(ABC):
    @abstractmethod
    def transcribe(self, audio: bytes, model: str, filename: str = "segment.mp3") -> str:
        """Transcribe one audio segment and return its text."""

    @abstractmethod
    def provider_name(self) -> str:
        """Short provider identity, e.g. 'groq' or 'openai'."""


@dataclass(frozen=True)
class TranscriptionTarget:
    """Snapshot of the live provider selection, resolved per segment call."""
    provider: str
    model: str
    adapter: TranscriptionPort
