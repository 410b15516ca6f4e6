"""Centralized model factory for the extraction engine.

Builds the pydantic-ai model for the configured provider, wired to an HTTP
client that retries transient provider failures (429 and gateway errors).

Usage:
    from services.instructor.model_factory import build_llm_client

    client = build_llm_client(settings)  # PydanticAILlmClient or MockLlmClient
"""

from __future__ import annotations

import logging
from typing import Any, cast

from httpx import AsyncClient, HTTPStatusError
from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.retries import AsyncTenacityTransport, RetryConfig, wait_retry_after
from pydantic_ai.settings import ModelSettings
from tenacity import retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import Settings
from services.instructor.interfaces import LlmClient
from services.instructor.llm_client import MockLlmClient, PydanticAILlmClient


logger = logging.getLogger(__name__)


def _normalize_azure_endpoint(endpoint: str) -> str:
    """Normalize Azure OpenAI endpoint.

    Trailing slashes lead to `//openai/...` URLs, which Azure answers with 404.
    """
    return endpoint.rstrip("/")


def create_resilient_http_client(settings: Settings) -> AsyncClient:
    """Create HTTP client with retry logic for transient provider errors.

    Uses exponential backoff with a fallback strategy that respects
    Retry-After headers.
    """

    def should_retry_status(response: Any) -> None:
        """Raise exceptions for retryable HTTP status codes."""
        if response.status_code in (429, 502, 503, 504):
            response.raise_for_status()

    transport = AsyncTenacityTransport(
        config=RetryConfig(
            retry=retry_if_exception_type(HTTPStatusError),
            wait=wait_retry_after(
                fallback_strategy=wait_exponential(multiplier=2, min=1, max=30),
                max_wait=60,
            ),
            stop=stop_after_attempt(max(1, settings.LLM_HTTP_RETRIES)),
            reraise=True,
        ),
        validate_response=should_retry_status,
    )
    return AsyncClient(transport=transport, timeout=settings.LLM_TIMEOUT_SECONDS)


def _create_openai_model(settings: Settings, http_client: AsyncClient | None) -> Model:
    provider = OpenAIProvider(
        base_url=settings.LLM_BASE_URL,
        api_key=settings.LLM_API_KEY,
        http_client=http_client,
    )
    return OpenAIChatModel(settings.LLM_MODEL, provider=provider)


def _create_azure_model(settings: Settings, http_client: AsyncClient | None) -> Model:
    """Create an Azure OpenAI model; LLM_MODEL is the deployment name."""
    from openai import AsyncAzureOpenAI

    if not settings.AZURE_OPENAI_ENDPOINT or not settings.AZURE_OPENAI_API_VERSION:
        raise ValueError(
            "LLM_PROVIDER=azure_openai requires AZURE_OPENAI_ENDPOINT and "
            "AZURE_OPENAI_API_VERSION"
        )
    azure_client = AsyncAzureOpenAI(
        azure_endpoint=_normalize_azure_endpoint(settings.AZURE_OPENAI_ENDPOINT),
        api_key=settings.LLM_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        http_client=http_client,
    )
    provider = OpenAIProvider(openai_client=azure_client)
    return OpenAIChatModel(settings.LLM_MODEL, provider=provider)


def _create_gemini_model(settings: Settings, http_client: AsyncClient | None) -> Model:
    if not settings.LLM_API_KEY:
        raise ValueError("LLM_PROVIDER=gemini requires LLM_API_KEY")
    provider = GoogleProvider(api_key=settings.LLM_API_KEY, http_client=http_client)
    return cast(Model, GoogleModel(settings.LLM_MODEL, provider=provider))


def build_model(
    settings: Settings, http_client: AsyncClient | None = None
) -> Model | None:
    """Return the pydantic-ai model for LLM_PROVIDER, or None for `mock`."""
    provider = settings.LLM_PROVIDER
    if provider == "mock":
        return None
    if provider == "azure_openai":
        logger.info("Using Azure OpenAI deployment: %s", settings.LLM_MODEL)
        return _create_azure_model(settings, http_client)
    if provider == "gemini":
        logger.info("Using Gemini model: %s", settings.LLM_MODEL)
        return _create_gemini_model(settings, http_client)
    logger.info(
        "Using OpenAI-compatible model: %s (base_url=%s)",
        settings.LLM_MODEL,
        settings.LLM_BASE_URL or "default",
    )
    return _create_openai_model(settings, http_client)


def build_llm_client(settings: Settings) -> LlmClient:
    """Build the language model client described by `settings`."""
    if settings.LLM_PROVIDER == "mock":
        logger.info("Using mock language model client")
        return MockLlmClient()

    model = build_model(settings, create_resilient_http_client(settings))
    model_settings: ModelSettings = {
        "temperature": settings.LLM_TEMPERATURE,
        "max_tokens": settings.LLM_MAX_TOKENS,
        "timeout": settings.LLM_TIMEOUT_SECONDS,
    }
    return PydanticAILlmClient.from_model(
        cast(Model, model), model_settings=model_settings
    )
