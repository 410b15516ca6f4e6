"""Shared test fixtures for pytest.

ENVIRONMENT is pinned to `test` before anything reads settings so no .env
file is picked up and the mock language model provider can be used.
"""

import json
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


os.environ["ENVIRONMENT"] = "test"

from core.config import Settings
from main import create_app
from services.instructor.llm_client import MockLlmClient


PERSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "age": {"type": "integer"},
    },
    "required": ["name", "age"],
}


def make_response(values: dict[str, Any], confidence: float = 0.95) -> str:
    """Build a model response in the fields/confidence protocol."""
    return json.dumps(
        {
            "fields": {
                name: {
                    "value": value,
                    "confidence": confidence,
                    "reasoning": f"Found {name} in the input",
                    "alternatives": [],
                }
                for name, value in values.items()
            },
            "errors": [],
        }
    )


@pytest.fixture
def response_factory() -> Callable[..., str]:
    return make_response


@pytest.fixture
def person_schema() -> dict[str, Any]:
    return PERSON_SCHEMA


@pytest.fixture
def person_schema_text() -> str:
    return json.dumps(PERSON_SCHEMA)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        ENVIRONMENT="test",
        LLM_PROVIDER="mock",
        CORS_ORIGINS=["http://testserver"],
    )


@pytest.fixture
def mock_llm() -> MockLlmClient:
    return MockLlmClient()


@pytest_asyncio.fixture
async def async_client(
    test_settings: Settings, mock_llm: MockLlmClient
) -> AsyncGenerator[AsyncClient, None]:
    """Async client against an app wired to the `mock_llm` client."""
    app = create_app(settings=test_settings, llm_client=mock_llm)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
