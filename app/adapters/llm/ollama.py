import logging

import httpx

from app.ports.llm import LLMPort

logger = logging.getLogger(__name__)


class OllamaLLMAdapter(LLMPort):
    """LLM adapter using a local Ollama instance."""

    provider = "ollama"

    def __init__(self, base_url: str, model: str) -> None:
        self._base_url = base_url.rstrip("/")
        self.model = model

    async def complete(self, prompt: dict[str, str], max_tokens: int) -> str:
        """Send a chat request to Ollama."""
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt["system"]},
                {"role": "user", "content": prompt["user"]},
            ],
            "stream": False,
            "options": {"num_predict": max_tokens},
        }
        async with httpx.AsyncClient(timeout=180.0) as client:
            logger.info(
                "Ollama request: model=%s, prompt=%s, max_tokens=%d",
                self.model, prompt.get("name", "?"), max_tokens,
            )
            resp = await client.post(f"{self._base_url}/api/chat", json=payload)
            resp.raise_for_status()
            result = resp.json()["message"]["content"]
            logger.info("Ollama response: %d chars", len(result))
            return result
