import logging
from typing import Optional

import backoff
import httpx

from app.services.llm.base import TextGenerationService, is_client_error, shared_http_client

logger = logging.getLogger(__name__)


class OllamaClient(TextGenerationService):
    """
    Client for a local Ollama instance.
    One request per call; the caller owns the timeout and the fallback.
    """

    name = "ollama"

    def __init__(self, base_url: str = "http://127.0.0.1:11434", model: str = "llama3",
                 probe_max_tries: int = 3):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.probe_max_tries = probe_max_tries
        self.generate_endpoint = f"{self.base_url}/api/generate"

    async def generate_text(self, prompt: str) -> Optional[str]:
        """Deterministic clinical explanation (low temperature, short output)."""
        logger.debug("Sending request to Ollama (model=%s)", self.model)

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "keep_alive": "15m",
            "options": {
                "num_predict": 120,
                "temperature": 0.1,
                "top_p": 0.85,
                "repeat_penalty": 1.1,
                "num_ctx": 1024
            }
        }

        try:
            response = await shared_http_client().post(self.generate_endpoint, json=payload)
            response.raise_for_status()

            data = response.json()
            generated_text = data.get("response", "")

            logger.debug("Ollama request successful (%d chars)", len(generated_text))
            return generated_text

        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            logger.warning("Error communicating with Ollama: %s", e)
            return None
        except ValueError as e:
            logger.warning("Malformed Ollama response: %s", e)
            return None

    async def probe(self) -> bool:
        """Check the server is reachable, retrying with exponential backoff."""

        @backoff.on_exception(
            backoff.expo,
            (httpx.RequestError, httpx.HTTPStatusError),
            max_tries=self.probe_max_tries,
            giveup=is_client_error
        )
        async def _ping():
            response = await shared_http_client().get(f"{self.base_url}/api/tags")
            response.raise_for_status()

        try:
            await _ping()
            return True
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.warning("Ollama not reachable at %s: %s", self.base_url, e)
            return False
