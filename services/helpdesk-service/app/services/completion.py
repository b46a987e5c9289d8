"""Client for the external chat-completion service.

The service accepts role-tagged messages plus model, temperature and token budget,
and answers with an OpenAI-style body whose ``choices[0].message.content`` holds the text.
"""

import logging
from typing import Dict, List, Optional

import httpx

from app.core.config import Settings

logger = logging.getLogger(__name__)


class CompletionClient:
    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        model: str = "mistral-small-latest",
        temperature: float = 0.3,
        max_tokens: int = 1000,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(headers=headers, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionClient":
        return cls(
            api_url=settings.AI_API_URL,
            api_key=settings.AI_API_KEY,
            model=settings.AI_MODEL,
            temperature=settings.AI_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
            timeout=settings.AI_TIMEOUT,
        )

    def complete(self, messages: List[Dict[str, str]]) -> str:
        """Send one completion request and return the raw response body.

        Decoding is left to the caller so a malformed 2xx body can be handled
        like any other unusable reply.

        Raises httpx.HTTPError on transport failures and non-2xx answers.
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        logger.info("Requesting completion from %s (model=%s)", self.api_url, self.model)
        response = self._client.post(self.api_url, json=payload)
        response.raise_for_status()
        return response.text

    def close(self):
        self._client.close()
