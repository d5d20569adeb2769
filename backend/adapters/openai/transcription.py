"""OpenAITranscriptionAdapter — segment transcription through the OpenAI audio API."""

from typing import Optional

from openai import OpenAI

from domain.errors import ProviderConfigurationError
from ports.transcription import TranscriptionPort

DEFAULT_MODEL = "whisper-1"


class OpenAITranscriptionAdapter(TranscriptionPort):
    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client: Optional[OpenAI] = None

    def transcribe(self, audio: bytes, model: str = DEFAULT_MODEL, filename: str = "segment.mp3") -> str:
        response = self._get_client().audio.transcriptions.create(
            file=(filename, audio),
            model=model,
            response_format="verbose_json",
        )
        return getattr(response, "text", "") or ""

    def provider_name(self) -> str:
        return "openai"

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise ProviderConfigurationError("No OpenAI API key specified (OPENAI_API_KEY)")
            self._client = OpenAI(api_key=self._api_key)
        return self._client
