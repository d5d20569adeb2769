"""Groq cloud adapters for Whisper transcription and chat summarization."""

from .transcription import GroqTranscriptionAdapter
from .summarization import GroqSummarizationAdapter

__all__ = ["GroqTranscriptionAdapter", "GroqSummarizationAdapter"]
