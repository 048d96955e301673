import logging
import os
from typing import Optional

import backoff
import httpx
from dotenv import find_dotenv, load_dotenv

from app.services.llm.base import TextGenerationService, is_client_error, shared_http_client

# Load .env file (walks up directories to find it)
load_dotenv(find_dotenv())

logger = logging.getLogger(__name__)

# Groq API config
GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"
GROQ_MODELS_URL = "https://api.groq.com/openai/v1/models"


class GroqClient(TextGenerationService):
    """
    Client for Groq's hosted Llama API (OpenAI-compatible).
    Drop-in replacement for OllamaClient.
    """

    name = "groq"

    def __init__(self, api_key: str = None, model: str = None, probe_max_tries: int = 3):
        self.api_key = api_key or os.environ.get("GROQ_API_KEY", "")
        self.model = model or os.environ.get("GROQ_MODEL", "llama-3.1-8b-instant")
        self.probe_max_tries = probe_max_tries

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def generate_text(self, prompt: str) -> Optional[str]:
        """Deterministic clinical explanation via Groq."""
        if not self.api_key:
            logger.warning("GROQ_API_KEY is not set; skipping Groq request")
            return None

        logger.debug("Sending request to Groq (model=%s)", self.model)

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": 120,
            "temperature": 0.1,
            "top_p": 0.85,
        }

        try:
            response = await shared_http_client().post(GROQ_API_URL, json=payload, headers=self._headers())
            response.raise_for_status()

            data = response.json()
            generated_text = data["choices"][0]["message"]["content"]

            logger.debug("Groq request successful (%d chars)", len(generated_text))
            return generated_text

        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            logger.warning("Error communicating with Groq: %s", e)
            return None
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("Malformed Groq response: %s", e)
            return None

    async def probe(self) -> bool:
        if not self.api_key:
            logger.warning("GROQ_API_KEY is not set; Groq unavailable")
            return False

        @backoff.on_exception(
            backoff.expo,
            (httpx.RequestError, httpx.HTTPStatusError),
            max_tries=self.probe_max_tries,
            giveup=is_client_error
        )
        async def _ping():
            response = await shared_http_client().get(GROQ_MODELS_URL, headers=self._headers())
            response.raise_for_status()

        try:
            await _ping()
            return True
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.warning("Groq not reachable: %s", e)
            return False
