"""LLM port: abstract interface every text-generation provider implements."""

from abc import ABC, abstractmethod


class LLMPort(ABC):
    """Abstraction over a chat/text-generation model."""

    provider: str = "unknown"
    model: str = ""
    configured: bool = True

    @abstractmethod
    async def complete(self, prompt: dict[str, str], max_tokens: int) -> str:
        """
        Run a rendered prompt and return the raw text response.

        ``prompt`` is the output of ``PromptTemplate.render``: it carries
        ``name``, ``system`` and ``user`` keys.
        """
        ...
