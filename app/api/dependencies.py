"""Provider wiring: pick the LLM and storage adapters from settings."""

import logging
from functools import lru_cache

from fastapi import Depends

from app.config import LLMProvider, StorageBackend, settings
from app.ports.llm import LLMPort
from app.ports.storage import StoragePort
from app.services.ai import AIService

logger = logging.getLogger(__name__)


@lru_cache
def get_llm() -> LLMPort:
    """Return the configured LLM adapter (one instance per process)."""
    provider = settings.llm_provider
    if provider == LLMProvider.GEMINI:
        from app.adapters.llm.gemini import GeminiLLMAdapter

        return GeminiLLMAdapter(settings.gemini_api_key, settings.gemini_model)
    if provider == LLMProvider.OPENAI:
        from app.adapters.llm.openai_adapter import OpenAILLMAdapter

        return OpenAILLMAdapter(settings.openai_api_key, settings.openai_model)
    if provider == LLMProvider.OLLAMA:
        from app.adapters.llm.ollama import OllamaLLMAdapter

        return OllamaLLMAdapter(settings.ollama_base_url, settings.ollama_model)

    from app.adapters.llm.mock import MockLLMAdapter

    logger.warning("Using MockLLMAdapter; AI answers are canned")
    return MockLLMAdapter()


@lru_cache
def get_storage() -> StoragePort:
    """Return the configured cover storage adapter (one instance per process)."""
    if settings.storage_backend == StorageBackend.S3:
        from app.adapters.storage.s3 import S3StorageAdapter

        return S3StorageAdapter(
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            bucket=settings.s3_bucket,
        )

    from app.adapters.storage.local import LocalStorageAdapter

    return LocalStorageAdapter(settings.local_storage_path)


def get_ai_service(llm: LLMPort = Depends(get_llm)) -> AIService:
    """Request-scoped AI glue bound to the configured model."""
    return AIService(llm)
