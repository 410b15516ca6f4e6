"""Init file for the extraction engine."""

from .engine import Instructor
from .llm_client import MockLlmClient, PydanticAILlmClient
from .schema_validator import JsonSchemaValidator


__all__ = [
    "Instructor",
    "JsonSchemaValidator",
    "MockLlmClient",
    "PydanticAILlmClient",
]
