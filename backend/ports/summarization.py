"""SummarizationPort — abstract interface for chat-completion providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class SummarizationPort(ABC):
    @abstractmethod
    def complete(self, system_prompt: str, user_text: str, model: str) -> str:
        """Send a system prompt plus the transcript, return the generated text."""

    @abstractmethod
    def provider_name(self) -> str:
        """Short provider identity, e.g. 'groq' or 'openai'."""


@dataclass(frozen=True)
class SummarizationTarget:
    """Snapshot of the live provider selection for the summarize call."""
    provider: str
    model: str
    adapter: SummarizationPort
