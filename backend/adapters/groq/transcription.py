"""GroqTranscriptionAdapter — segment transcription through Groq's Whisper endpoint."""

from typing import Optional

from groq import Groq

from domain.errors import ProviderConfigurationError
from ports.transcription import TranscriptionPort

DEFAULT_MODEL = "whisper-large-v3"


class GroqTranscriptionAdapter(TranscriptionPort):
    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client: Optional[Groq] = None

    def transcribe(self, audio: bytes, model: str = DEFAULT_MODEL, filename: str = "segment.mp3") -> str:
        response = self._get_client().audio.transcriptions.create(
            file=(filename, audio),
            model=model,
            response_format="verbose_json",
        )
        return getattr(response, "text", "") or ""

    def provider_name(self) -> str:
        return "groq"

    def _get_client(self) -> Groq:
        if self._client is None:
            if not self._api_key:
                raise ProviderConfigurationError("No Groq API key specified (GROQ_API_KEY)")
            self._client = Groq(api_key=self._api_key)
        return self._client
