"""OpenAI adapters for Whisper transcription and chat summarization."""

from .transcription import OpenAITranscriptionAdapter
from .summarization import OpenAISummarizationAdapter

__all__ = ["OpenAITranscriptionAdapter", "OpenAISummarizationAdapter"]
