import asyncio
import logging
from typing import Optional

import httpx

from app.services.pharmacogenomics.config import NarrativeConfig, get_narrative_config

logger = logging.getLogger(__name__)

# Shared HTTP client for connection reuse; rebuilt when a new event loop is running
_shared_client: Optional[httpx.AsyncClient] = None
_shared_client_loop: Optional[asyncio.AbstractEventLoop] = None


def shared_http_client() -> httpx.AsyncClient:
    global _shared_client, _shared_client_loop
    loop = asyncio.get_running_loop()
    if _shared_client is None or _shared_client_loop is not loop or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(timeout=30.0)
        _shared_client_loop = loop
    return _shared_client


def is_client_error(e: Exception) -> bool:
    """4xx responses are not worth retrying."""
    return isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500


class TextGenerationService:
    """
    Best-effort text generation. ``generate_text`` returns the generated
    string, or None on any failure; it never raises for transport errors.
    """

    name = "base"

    async def generate_text(self, prompt: str) -> Optional[str]:
        raise NotImplementedError

    async def probe(self) -> bool:
        """Startup availability check."""
        return True


class DisabledTextService(TextGenerationService):
    """Generation switched off: every request fails immediately."""

    name = "disabled"

    async def generate_text(self, prompt: str) -> Optional[str]:
        return None

    async def probe(self) -> bool:
        return False


def get_text_service(config: Optional[NarrativeConfig] = None) -> TextGenerationService:
    """Build the configured text-generation service."""
    cfg = config or get_narrative_config()
    provider = (cfg.provider or "").strip().lower()

    if provider == "ollama":
        from app.services.llm.ollama_client import OllamaClient
        return OllamaClient(base_url=cfg.ollama_base_url, model=cfg.ollama_model,
                            probe_max_tries=cfg.probe_max_tries)
    if provider == "groq":
        from app.services.llm.groq_client import GroqClient
        return GroqClient(model=cfg.groq_model, probe_max_tries=cfg.probe_max_tries)
    if provider not in ("disabled", "none", "off", ""):
        logger.warning("Unknown text provider '%s'; narrative generation disabled", cfg.provider)
    return DisabledTextService()
