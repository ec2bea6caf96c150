import logging

from google import genai
from google.genai import types

from app.ports.llm import LLMPort

logger = logging.getLogger(__name__)


class GeminiLLMAdapter(LLMPort):
    """LLM adapter using Google Gemini through the Google Gen AI SDK."""

    provider = "gemini"

    def __init__(self, api_key: str, model: str) -> None:
        self._api_key = api_key
        self._client: genai.Client | None = None
        self.model = model

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> genai.Client:
        """Lazy client creation so a missing key only fails the AI call, not startup."""
        if not self._api_key:
            raise RuntimeError("Gemini API key is not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
            logger.info("Gemini client initialized (model=%s)", self.model)
        return self._client

    async def complete(self, prompt: dict[str, str], max_tokens: int) -> str:
        """Send a generateContent request to Gemini."""
        client = self._get_client()
        logger.info(
            "Gemini request: model=%s, prompt=%s, max_tokens=%d",
            self.model, prompt.get("name", "?"), max_tokens,
        )
        config = types.GenerateContentConfig(
            system_instruction=prompt["system"],
            temperature=0.7,
            max_output_tokens=max_tokens,
        )
        response = await client.aio.models.generate_content(
            model=self.model,
            contents=prompt["user"],
            config=config,
        )
        result = response.text or ""
        logger.info("Gemini response: %d chars", len(result))
        return result
