from __future__ import annotations

import logging
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.v1.api import api_router
from core.config import Settings, load_settings
from core.error_handler import (
    ExceptionNormalizationMiddleware,
    global_exception_handler,
    setup_logging,
)
from core.middleware import CorrelationIdMiddleware
from services.instructor.interfaces import LlmClient


logger = logging.getLogger(__name__)


def validate_cors_origins(origins: list[str]) -> list[str]:
    """Drop origins that are not absolute http(s) URLs."""

    def is_valid_url(url: str) -> bool:
        parsed = urlparse(url)
        return bool(parsed.scheme in {"http", "https"} and parsed.netloc)

    validated_origins = []
    for origin in origins:
        if is_valid_url(origin):
            validated_origins.append(origin)
        else:
            logger.warning("Invalid CORS origin '%s' ignored", origin)
    return validated_origins


def create_app(
    settings: Settings | None = None, llm_client: LlmClient | None = None
) -> FastAPI:
    """Build the API application.

    `settings` defaults to `load_settings()`. A `llm_client` may be injected
    (tests, demos); otherwise one is built from settings on first request.
    """
    settings = settings or load_settings()
    setup_logging(settings)

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Schema-guided form extraction and workflow execution",
        version="0.1.0",
        docs_url=None,  # Mounted under /api/v1/docs
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.llm_client = llm_client

    origins = settings.CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=validate_cors_origins(
            origins if isinstance(origins, list) else [origins]
        ),
        allow_credentials=settings.ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ExceptionNormalizationMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, global_exception_handler)  # type: ignore[arg-type]

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/api/v1/docs", include_in_schema=False)
    def custom_swagger_ui_html():
        return get_swagger_ui_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Docs"
        )

    @app.get("/api/v1/redoc", include_in_schema=False)
    def redoc_html():
        return get_redoc_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Redoc"
        )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
