"""GroqSummarizationAdapter — chat completion over the stitched transcript."""

import logging
from typing import Optional

from groq import Groq

from domain.errors import ProviderConfigurationError
from ports.summarization import SummarizationPort

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "llama-3.3-70b-versatile"
MAX_COMPLETION_TOKENS = 15140


class GroqSummarizationAdapter(SummarizationPort):
    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client: Optional[Groq] = None

    def complete(self, system_prompt: str, user_text: str, model: str = DEFAULT_CHAT_MODEL) -> str:
        logger.info(f"Sending system prompt + transcript to Groq chat ({model})")
        response = self._get_client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            temperature=1,
            max_completion_tokens=MAX_COMPLETION_TOKENS,
            top_p=1,
            stream=False,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def provider_name(self) -> str:
        return "groq"

    def _get_client(self) -> Groq:
        if self._client is None:
            if not self._api_key:
                raise ProviderConfigurationError("No Groq API key specified (GROQ_API_KEY)")
            self._client = Groq(api_key=self._api_key)
        return self._client
