import logging

from openai import AsyncOpenAI

from app.ports.llm import LLMPort

logger = logging.getLogger(__name__)


class OpenAILLMAdapter(LLMPort):
    """LLM adapter using OpenAI API (GPT-4o, GPT-4o-mini, etc.)."""

    provider = "openai"

    def __init__(self, api_key: str, model: str) -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.configured = bool(api_key)

    async def complete(self, prompt: dict[str, str], max_tokens: int) -> str:
        """Send a chat completion request to OpenAI."""
        logger.info(
            "OpenAI request: model=%s, prompt=%s, max_tokens=%d",
            self.model, prompt.get("name", "?"), max_tokens,
        )
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": prompt["system"]},
                {"role": "user", "content": prompt["user"]},
            ],
            max_tokens=max_tokens,
            temperature=0.7,
        )
        result = resp.choices[0].message.content or ""
        logger.info("OpenAI response: %d chars", len(result))
        return result
