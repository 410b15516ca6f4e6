"""Application factory wiring."""

from __future__ import annotations

from fastapi.testclient import TestClient

from core.config import Settings
from main import create_app, validate_cors_origins
from services.instructor.llm_client import MockLlmClient


def test_invalid_cors_origins_are_dropped():
    origins = [
        "http://localhost:5173",
        "localhost",
        "ftp://files.example",
        "https://app.example",
    ]

    assert validate_cors_origins(origins) == [
        "http://localhost:5173",
        "https://app.example",
    ]


def test_cors_preflight_allows_configured_origin():
    settings = Settings(
        ENVIRONMENT="test", LLM_PROVIDER="mock", CORS_ORIGINS=["https://app.example"]
    )
    client = TestClient(create_app(settings=settings))

    response = client.options(
        "/api/v1/forms/types",
        headers={
            "Origin": "https://app.example",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://app.example"


def test_client_is_built_from_settings_on_first_use():
    settings = Settings(ENVIRONMENT="test", LLM_PROVIDER="mock")
    app = create_app(settings=settings)
    client = TestClient(app)

    assert app.state.llm_client is None
    response = client.post(
        "/api/v1/forms/parse", json={"form_type": "task", "user_input": "write docs"}
    )

    assert response.status_code == 200
    assert isinstance(app.state.llm_client, MockLlmClient)


def test_settings_are_kept_on_app_state():
    settings = Settings(ENVIRONMENT="test", LLM_PROVIDER="mock", APP_NAME="FormBot")
    app = create_app(settings=settings)

    assert app.state.settings is settings
    assert app.title == "FormBot API"
