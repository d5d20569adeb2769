"""OpenAISummarizationAdapter — chat completion over the stitched transcript."""

import logging
from typing import Optional

from openai import OpenAI

from domain.errors import ProviderConfigurationError
from ports.summarization import SummarizationPort

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "chatgpt-4o-latest"


class OpenAISummarizationAdapter(SummarizationPort):
    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client: Optional[OpenAI] = None

    def complete(self, system_prompt: str, user_text: str, model: str = DEFAULT_CHAT_MODEL) -> str:
        logger.info(f"Sending system prompt + transcript to OpenAI chat ({model})")
        response = self._get_client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            temperature=1,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def provider_name(self) -> str:
        return "openai"

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise ProviderConfigurationError("No OpenAI API key specified (OPENAI_API_KEY)")
            self._client = OpenAI(api_key=self._api_key)
        return self._client
